"""
Unit tests for threat_export/report_generator.py

Tests cover:
- Markdown escaping and line collapsing
- The Markdown threat report layout
- Timestamps and export filenames
- Compact JSON document export
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from conftest import FIXED_NOW
from threat_export.report_generator import (
    ReportGenerator,
    collapse_newlines,
    escape_markdown_text,
    iso_timestamp,
    json_filename,
    locale_timestamp,
    markdown_filename,
    to_json_document,
    to_markdown,
)
from threat_export.schemas import Document, Threat


class TestEscaping:
    """Tests for escape_markdown_text and collapse_newlines."""

    def test_special_characters(self):
        """Test that links, images and html are neutralized."""
        assert escape_markdown_text('a [b] (c) <d>') == 'a \\[b\\] \\(c\\) &lt;d&gt;'
        assert escape_markdown_text('!alert') == '\\!alert'

    def test_emphasis_is_kept(self):
        """Test that emphasis markers pass through."""
        assert escape_markdown_text('*bold* _x_') == '*bold* _x_'

    def test_collapse_newlines(self):
        """Test that each run of line breaks becomes one space."""
        assert collapse_newlines('a\r\n\r\nb\nc') == 'a b c'


class TestMarkdownReport:
    """Tests for the Markdown threat report."""

    def test_full_report(self):
        """Test the report layout for a complete and a sparse threat."""
        first = Threat(
            title='SQL injection',
            severity='High',
            owner='Bob',
            description='Line one\nLine two',
            mitigation='Use [prepared] statements',
            category='Tampering',
        )
        second = Threat(severity='Low', description='')

        report = to_markdown([first, second], '1/15/2024, 10:30:45 AM')

        assert report == (
            'Threats 1/15/2024, 10:30:45 AM\n'
            '=======\n'
            '\n'
            '1. **SQL injection**\n'
            '    - *Category:* Tampering\n'
            '    - *Severity:* High\n'
            '    - *Author:* Bob\n'
            '    - *Description:* Line one Line two\n'
            '    - *Mitigation:* Use \\[prepared\\] statements\n'
            '2. **No title given**\n'
            '    - *Severity:* Low\n'
            '    - *Description:* \n'
        )

    def test_empty_report(self):
        """Test the report when there are no threats."""
        assert to_markdown([], 'today') == 'Threats today\n=======\n\n\n'

    def test_placeholder_mitigation_is_omitted(self):
        """Test that the default mitigation text is not reported."""
        report = to_markdown([Threat(title='x', mitigation='No mitigation provided.')], 'today')

        assert 'Mitigation' not in report

    def test_blank_title(self):
        """Test that a whitespace title counts as missing."""
        report = to_markdown([Threat(title='   ')], 'today')

        assert '1. **No title given**\n' in report

    def test_title_is_escaped(self):
        """Test that markup in titles is escaped."""
        report = to_markdown([Threat(title='<script>')], 'today')

        assert '1. **&lt;script&gt;**\n' in report

    def test_non_text_values(self):
        """Test that stored values of other types are reported as text."""
        report = to_markdown([Threat(title=7, severity=3, description=None)], 'today')

        assert report == 'Threats today\n=======\n\n1. **7**\n    - *Severity:* 3\n'

    def test_numbering_follows_order(self):
        """Test that entries are numbered in the order given."""
        report = to_markdown([Threat(title='b'), Threat(title='a')], 'today')

        assert report.index('1. **b**') < report.index('2. **a**')

    def test_custom_template_directory(self, tmp_path):
        """Test rendering with a template from another directory."""
        (tmp_path / 'threats.md.j2').write_text('{{ entries | length }} threats', encoding='utf-8')

        report = ReportGenerator(tmp_path).to_markdown([Threat(title='x')], 'today')

        assert report == '1 threats'


class TestTimestamps:
    """Tests for iso_timestamp and locale_timestamp."""

    def test_iso_timestamp(self):
        """Test millisecond precision with a Z suffix."""
        assert iso_timestamp(FIXED_NOW) == '2024-01-15T10:30:45.123Z'

    def test_iso_timestamp_converts_to_utc(self):
        """Test that aware times are converted to UTC."""
        moment = datetime(2024, 1, 15, 12, 30, 45, tzinfo=timezone(timedelta(hours=2)))

        assert iso_timestamp(moment) == '2024-01-15T10:30:45.000Z'

    @pytest.mark.parametrize('moment,expected', [
        (datetime(2024, 1, 15, 0, 5, 9), '1/15/2024, 12:05:09 AM'),
        (datetime(2024, 12, 3, 12, 0, 0), '12/3/2024, 12:00:00 PM'),
        (datetime(2024, 7, 4, 23, 59, 1), '7/4/2024, 11:59:01 PM'),
    ])
    def test_locale_timestamp(self, moment, expected):
        """Test the report date format."""
        assert locale_timestamp(moment) == expected


class TestFilenames:
    """Tests for json_filename and markdown_filename."""

    def test_json_filename(self):
        """Test that spaces and only the first colon are replaced."""
        # every space of the title is replaced, not only the first one
        assert json_filename('Online Shop v2', FIXED_NOW) == 'Online-Shop-v2-2024-01-15T10-30:45.123Z.json'

    def test_json_filename_without_title(self):
        """Test that a missing title leaves the timestamp alone."""
        assert json_filename(None, FIXED_NOW) == '-2024-01-15T10-30:45.123Z.json'

    def test_json_filename_numeric_title(self):
        """Test that a non-text title is written as text."""
        assert json_filename(2024, FIXED_NOW) == '2024-2024-01-15T10-30:45.123Z.json'

    def test_markdown_filename_from_title(self):
        """Test that the title without spaces is the slug."""
        assert markdown_filename('Online Shop', None, FIXED_NOW) == 'threats-OnlineShop-2024-01-15T10-30-45.123Z.md'

    def test_markdown_filename_from_game_mode(self):
        """Test the game mode slug when there is no document."""
        name = markdown_filename(None, 'Elevation of Privilege', FIXED_NOW)

        assert name == 'threats-ElevationofPrivilege-2024-01-15T10-30-45.123Z.md'

    def test_markdown_filename_without_slug(self):
        """Test the filename with neither a title nor a game mode."""
        assert markdown_filename(None, None, FIXED_NOW) == 'threats--2024-01-15T10-30-45.123Z.md'


class TestJsonDocument:
    """Tests for to_json_document."""

    def test_compact_utf8(self, document_dict):
        """Test that the export is compact UTF-8 and equals the document."""
        document_dict['summary']['title'] = 'Boutique en ligne é'

        content = to_json_document(Document.model_validate(document_dict))

        assert isinstance(content, bytes)
        assert json.loads(content.decode('utf-8')) == document_dict
        assert 'é'.encode('utf-8') in content
        assert b'": ' not in content
