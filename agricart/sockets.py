# agricart/sockets.py
"""
Socket channel: each authenticated connection joins the room named after its
user id, which is where services.notifications emits.

Clients connect with ``auth={"token": "<bearer token>"}``.
"""

from __future__ import annotations

from flask import current_app, session
from flask_socketio import emit, join_room

from .extensions import db, socketio
from .models import User
from .services.notifications import room_for
from .utils.parsers import clean_str, parse_int
from .utils.tokens import verify_token


@socketio.on("connect")
def on_connect(auth=None):
    token = auth.get("token") if isinstance(auth, dict) else None
    user_id = verify_token(token)
    user = db.session.get(User, user_id) if user_id is not None else None
    if user is None or not user.is_active:
        current_app.logger.info("Socket connection refused (no valid token)")
        return False

    session["user_id"] = user.id
    join_room(room_for(user.id))
    current_app.logger.info("Socket connected for user %s", user.id)
    return True


@socketio.on("disconnect")
def on_disconnect(*args):
    user_id = session.pop("user_id", None)
    if user_id is not None:
        current_app.logger.info("Socket disconnected for user %s", user_id)


@socketio.on("sendMessage")
def on_send_message(data):
    sender = session.get("user_id")
    if sender is None or not isinstance(data, dict):
        return
    receiver = parse_int(data.get("receiver"))
    message = clean_str(data.get("message"))
    if receiver is None or not message:
        return
    emit("receiveMessage", {"sender": sender, "message": message}, to=room_for(receiver))
