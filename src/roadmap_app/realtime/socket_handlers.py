"""Socket.IO connection handlers.

Clients connect with ``auth={"userId": ...}`` (or ``?userId=`` on the
handshake URL); the session id is registered with the app's
ProgressNotifier so generation progress reaches that socket.
"""

from flask import request

from ..extensions import get_progress_notifier, socketio
from ..utils.logging_config import get_logger

logger = get_logger("websocket")


@socketio.on('connect')
def handle_connect(auth=None):
    user_id = None
    if isinstance(auth, dict):
        user_id = auth.get('userId')
    if user_id is None:
        user_id = request.args.get('userId')

    notifier = get_progress_notifier()
    if notifier is not None and user_id:
        notifier.register(user_id, request.sid)
        logger.debug(f"Socket {request.sid} connected for user {user_id}")


@socketio.on('disconnect')
def handle_disconnect(*_args):
    notifier = get_progress_notifier()
    if notifier is not None:
        notifier.unregister(sid=request.sid)
