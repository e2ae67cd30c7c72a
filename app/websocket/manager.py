from typing import Dict
from fastapi import WebSocket
import json
import logging

logger = logging.getLogger(__name__)

class WebSocketManager:
    def __init__(self):
        # store active connections: user_id -> websocket
        self.active_connections: Dict[int, WebSocket] = {}

    async def connect(self, websocket: WebSocket, user_id: int):
        # Accept WebSocket connection and store using mapping
        await websocket.accept()
        self.active_connections[user_id] = websocket
        logger.info(f"Websocket connected for user {user_id}")

    def disconnect(self, user_id: int):
        if user_id in self.active_connections:
            del self.active_connections[user_id]
            logger.info(f"Websocket disconnected for user {user_id}")

    async def send_to_user(self, user_id: int, message: dict) -> bool:
        websocket = self.active_connections.get(user_id)
        if websocket is None:
            return False
        try:
            await websocket.send_text(json.dumps(message))
            logger.info(f"Message sent to user {user_id}: {message['type']}")
            return True
        except Exception as e:
            logger.error(f"Failed to send message to user {user_id}: {str(e)}")
            self.disconnect(user_id)
            return False

    async def broadcast(self, message: dict) -> int:
        # Send message to every connected user, dropping dead connections
        disconnected_users = []
        delivered = 0

        for user_id, websocket in list(self.active_connections.items()):
            try:
                await websocket.send_text(json.dumps(message))
                delivered += 1
            except Exception as e:
                logger.error(f"Failed to broadcast to user {user_id}: {str(e)}")
                disconnected_users.append(user_id)

        for user_id in disconnected_users:
            self.disconnect(user_id)
        logger.info(f"Broadcast sent to {delivered} users: {message['type']}")
        return delivered

websocket_manager = WebSocketManager()
