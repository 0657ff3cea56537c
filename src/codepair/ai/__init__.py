"""Model gateway, prompts and the conversation orchestration pipeline.

Only the error hierarchy is imported eagerly; the editor package depends on
it, and the gateway (``codepair.ai.client``) depends on the orchestration
package, which in turn depends on the editor.
"""

from .errors import CodepairError, ConfigurationError, ErrorCode

__all__ = ["CodepairError", "ConfigurationError", "ErrorCode"]
