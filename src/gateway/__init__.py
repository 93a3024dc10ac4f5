from .normalizer import map_result_code_to_ui_message, normalize
from .sessions import is_session_valid
from .transport import GatewayResponse, HttpTransport

__all__ = [
    "map_result_code_to_ui_message",
    "normalize",
    "is_session_valid",
    "GatewayResponse",
    "HttpTransport",
]
