"""
services/messaging/router.py
Direct messages between profiles: thread list with unread counts,
conversation fetch with mark-read, send with realtime fan-out.
The /ws/chat socket accepts join_room and send_message events.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import and_, func, or_, select, union_all, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db, get_db_context
from services.messaging.relay import chat_event, chat_relay, room_id
from shared.exceptions import AppError, StorageFaultError, ValidationError
from shared.middleware.identity import IdentityPath, resolve_profile
from shared.models.models import Booking, Message, Profile, ProfileRole
from shared.schemas.schemas import (
    ChatMessageEnvelope,
    ConversationEnvelope,
    MessageCreateRequest,
    SocketSendMessage,
    ThreadListEnvelope,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["Messages"])
ws_router = APIRouter(tags=["Chat"])


# ── Helpers ───────────────────────────────────────────────────

async def _resolve_member(db: AsyncSession, identity: str, role: ProfileRole) -> Profile:
    profile = await resolve_profile(db, identity)
    if profile.role != role.value:
        raise ValidationError(f"Profile is not a {role.value}")
    return profile


def _between(a: Profile, b: Profile):
    return or_(
        and_(Message.sender_id == a.id, Message.receiver_id == b.id),
        and_(Message.sender_id == b.id, Message.receiver_id == a.id),
    )


async def store_message(
    db: AsyncSession, sender: Profile, receiver: Profile, content: str
) -> Message:
    """Persist and commit a message, then fan it out to the pair's room."""
    if sender.id == receiver.id:
        raise ValidationError("Cannot message yourself")
    message = Message(sender_id=sender.id, receiver_id=receiver.id, content=content)
    db.add(message)
    await db.commit()

    room = room_id(sender.external_identity, receiver.external_identity)
    await chat_relay.broadcast(
        chat_event(room, sender.external_identity, content, message.sent_at)
    )
    return message


# ── Threads ───────────────────────────────────────────────────

@router.get("/{role}/{identity}/threads", response_model=ThreadListEnvelope)
async def list_threads(
    role: ProfileRole,
    identity: IdentityPath,
    db: AsyncSession = Depends(get_db),
):
    """
    One entry per counterparty. For alumni, peers holding a booking with
    them are flagged prioritized and come first; then newest activity first.
    """
    me = await _resolve_member(db, identity, role)

    # Newest message per counterparty: max(sent_at) across both
    # directions, joined back to the message row.
    exchanged = union_all(
        select(Message.receiver_id.label("peer_id"), Message.sent_at.label("sent_at"))
        .where(Message.sender_id == me.id),
        select(Message.sender_id.label("peer_id"), Message.sent_at.label("sent_at"))
        .where(Message.receiver_id == me.id),
    ).subquery()
    latest = (
        select(exchanged.c.peer_id, func.max(exchanged.c.sent_at).label("last_at"))
        .group_by(exchanged.c.peer_id)
        .subquery()
    )
    rows = await db.execute(
        select(latest.c.peer_id, Message)
        .select_from(latest)
        .join(
            Message,
            and_(
                Message.sent_at == latest.c.last_at,
                or_(
                    and_(Message.sender_id == me.id, Message.receiver_id == latest.c.peer_id),
                    and_(Message.sender_id == latest.c.peer_id, Message.receiver_id == me.id),
                ),
            ),
        )
        .order_by(Message.id)
    )
    last_by_peer = {}
    for peer_id, message in rows:
        last_by_peer.setdefault(peer_id, message)
    if not last_by_peer:
        return {"success": True, "threads": []}
    peer_ids = list(last_by_peer)

    peers = {
        p.id: p
        for p in await db.scalars(select(Profile).where(Profile.id.in_(peer_ids)))
    }
    unread = dict(
        (
            await db.execute(
                select(Message.sender_id, func.count(Message.id))
                .where(
                    Message.receiver_id == me.id,
                    Message.is_read.is_(False),
                    Message.sender_id.in_(peer_ids),
                )
                .group_by(Message.sender_id)
            )
        ).all()
    )
    booked = set()
    if role == ProfileRole.ALUMNI:
        booked = set(
            await db.scalars(
                select(Booking.student_id).where(Booking.alumni_id == me.id).distinct()
            )
        )

    threads: List[dict] = []
    for peer_id in peer_ids:
        peer = peers[peer_id]
        last = last_by_peer[peer_id]
        threads.append(
            {
                "thread_id": peer.external_identity,
                "with": {
                    "id": peer.external_identity,
                    "name": peer.full_name,
                    "unread": unread.get(peer_id, 0),
                    "profile_image_url": peer.profile_image or "",
                },
                "last_message": last.content,
                "updated_at": last.sent_at,
                "prioritized": peer_id in booked,
            }
        )

    threads.sort(key=lambda t: t["updated_at"], reverse=True)
    threads.sort(key=lambda t: not t["prioritized"])
    return {"success": True, "threads": threads}


@router.get("/{role}/{identity}/threads/{peer}", response_model=ConversationEnvelope)
async def open_thread(
    role: ProfileRole,
    identity: IdentityPath,
    peer: IdentityPath,
    db: AsyncSession = Depends(get_db),
):
    """
    Full conversation, oldest first. Marks read exactly the peer's unread
    messages contained in the returned snapshot.
    """
    me = await _resolve_member(db, identity, role)
    other = await resolve_profile(db, peer)

    messages = list(
        await db.scalars(
            select(Message)
            .where(_between(me, other))
            .order_by(Message.sent_at, Message.id)
        )
    )
    unread_ids = [m.id for m in messages if m.sender_id == other.id and not m.is_read]
    if unread_ids:
        await db.execute(
            update(Message)
            .where(Message.id.in_(unread_ids))
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
    await db.commit()

    senders = {me.id: me.external_identity, other.id: other.external_identity}
    return {
        "success": True,
        "messages": [
            {"sender": senders[m.sender_id], "body": m.content, "timestamp": m.sent_at}
            for m in messages
        ],
    }


@router.post("/{role}/{identity}/threads/{peer}", response_model=ChatMessageEnvelope)
async def send_message(
    role: ProfileRole,
    identity: IdentityPath,
    peer: IdentityPath,
    data: MessageCreateRequest,
    db: AsyncSession = Depends(get_db),
):
    me = await _resolve_member(db, identity, role)
    other = await resolve_profile(db, peer)
    message = await store_message(db, me, other, data.body)
    return {
        "success": True,
        "message": {"sender": identity, "body": data.body, "timestamp": message.sent_at},
    }


# ── WebSocket ─────────────────────────────────────────────────

async def _socket_send(websocket: WebSocket, payload: dict) -> None:
    try:
        data = SocketSendMessage.model_validate(payload)
    except SchemaValidationError:
        await websocket.send_json({"event": "error", "error": "Invalid send_message payload"})
        return

    try:
        async with get_db_context() as db:
            me = await resolve_profile(db, data.my_identity)
            other = await resolve_profile(db, data.peer_identity)
            await store_message(db, me, other, data.content)
    except AppError as exc:
        await websocket.send_json({"event": "error", "error": exc.message, "code": exc.code})
    except SQLAlchemyError as exc:
        logger.error("Storage fault on socket send: %s", type(exc).__name__, exc_info=exc)
        fault = StorageFaultError()
        await websocket.send_json({"event": "error", "error": fault.message, "code": fault.code})


@ws_router.websocket("/ws/chat")
async def chat_socket(websocket: WebSocket):
    await websocket.accept()
    try:
        while True:
            try:
                payload = await websocket.receive_json()
            except ValueError:
                await websocket.send_json({"event": "error", "error": "Malformed JSON"})
                continue
            if not isinstance(payload, dict):
                await websocket.send_json({"event": "error", "error": "Expected an object"})
                continue

            event = payload.get("event")
            if event == "join_room" and payload.get("roomId"):
                chat_relay.join(str(payload["roomId"]), websocket)
            elif event == "send_message":
                await _socket_send(websocket, payload)
            else:
                await websocket.send_json({"event": "error", "error": "Unknown event"})
    except WebSocketDisconnect:
        pass
    finally:
        chat_relay.leave(websocket)
