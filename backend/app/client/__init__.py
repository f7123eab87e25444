from app.client.session import ClientState, Notification, SelectedFile, TransformSession

__all__ = [
    "ClientState",
    "Notification",
    "SelectedFile",
    "TransformSession",
]
