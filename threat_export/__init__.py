"""
Threat Export - threat model exports for card-game threat elicitation.

Adapts Threat Dragon V2 diagrams for rendering, merges threats identified
during play into the document and publishes JSON and Markdown exports.
"""

__version__ = "1.0.0"
