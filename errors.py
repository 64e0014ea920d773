"""Exception taxonomy for the collaboration hub.

Every error carries a machine-readable ``error_code`` and a human-readable
``message``. Handlers raise them; the router and gateway turn them into a
single reply to the originating connection.
"""


class HubError(Exception):
    error_code = "hub_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class CredentialError(HubError):
    error_code = "authentication_failed"


class CredentialMissing(CredentialError):
    error_code = "credential_missing"


class CredentialInvalid(CredentialError):
    error_code = "credential_invalid"


class CredentialIncomplete(CredentialError):
    error_code = "credential_incomplete"


class MalformedEnvelope(HubError):
    error_code = "invalid_message"

    def __init__(self, message: str, request_id=None) -> None:
        super().__init__(message)
        self.request_id = request_id


class UnauthenticatedAccess(HubError):
    error_code = "authentication_required"


class NotInSession(HubError):
    error_code = "not_in_session"


class UnknownTool(HubError):
    error_code = "unknown_tool"


class UnknownEnvelopeType(HubError):
    error_code = "unknown_message_type"


class AIProxyError(HubError):
    error_code = "ai_error"


class ProviderUnconfigured(AIProxyError):
    error_code = "provider_unconfigured"


class UnknownProvider(AIProxyError):
    error_code = "unknown_provider"


class AiRequestFailed(AIProxyError):
    error_code = "ai_request_failed"
