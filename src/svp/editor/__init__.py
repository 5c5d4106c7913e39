"""Editor package - Pure text transforms over vhost lines.

Editors never read or write files and never raise on malformed input.
"""

from svp.editor.auth import AuthDirectiveEditor
from svp.editor.ssl import SSLBlockStripper, SSLDocrootFixer, SSLEnhancer

__all__ = ["AuthDirectiveEditor", "SSLBlockStripper", "SSLDocrootFixer", "SSLEnhancer"]
