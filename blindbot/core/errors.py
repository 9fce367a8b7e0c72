"""
Error taxonomy for the turn-processing core.

Only InvalidTenant and ModelOutputInvalid ever reach the API layer; the
others are caught by the component that owns the degraded path.
"""
from typing import Optional


class SalesAgentError(Exception):
    """Base exception for sales agent operations"""
    pass


class InvalidTenant(SalesAgentError):
    """Unknown API key or a tenant whose status is not active"""

    def __init__(self, reason: str, tenant_id: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.tenant_id = tenant_id


class ModelOutputInvalid(SalesAgentError):
    """Text-generation output could not be parsed into a response envelope"""

    def __init__(self, message: str, raw_output: Optional[str] = None):
        super().__init__(message)
        self.raw_output = raw_output


class MediaDownloadFailed(SalesAgentError):
    """A customer or catalog image could not be fetched"""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Failed to download {url}: {reason}")
        self.url = url
        self.reason = reason


class RenderCollaboratorFailed(SalesAgentError):
    """Image generation or render upload failed"""
    pass


class KnowledgeRetrievalFailed(SalesAgentError):
    """Embedding or similarity search failed"""
    pass
