"""Console client: joins a room and logs every screen the lobby would show."""

import argparse
import asyncio
import logging

from socketio.exceptions import ConnectionError as SocketConnectionError

import config
from catalog import fetch_catalog
from identity_store import IdentityStore
from lobby_client import Intents, LobbyClient
from session import LobbyView, Phase

logger = logging.getLogger(__name__)


class ConsoleRenderer:
    def __init__(self, name: str = ""):
        self.name = name
        self.left = asyncio.Event()
        self._name_sent = False
        self._tasks = set()

    def render(self, view: LobbyView, intents: Intents):
        if view.reconnecting:
            logger.info("[%s] reconnecting...", view.room_code)
        if view.phase == Phase.AWAITING_NAME:
            name = self.name or view.suggested_name
            if name and not self._name_sent:
                self._name_sent = True
                task = asyncio.create_task(intents.submit_name(name))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
            else:
                logger.info("[%s] waiting for a name", view.room_code)
        elif view.phase == Phase.LOBBY:
            roster = ", ".join(
                f"{p.name or '?'}{' (host)' if p.is_host else ''}" for p in view.participant_list
            )
            logger.info("[%s] lobby: %s | selected: %s", view.room_code, roster,
                        view.selected_activity_id or "-")
        elif view.phase == Phase.IN_GAME:
            logger.info("[%s] playing %s: %s", view.room_code, view.selected_activity_id,
                        view.activity_state)
        else:
            logger.info("[%s] loading", view.room_code)

    def show_notice(self, text: str):
        logger.warning(text)

    def navigate(self, url: str):
        logger.info("Leaving lobby for %s", url)
        self.left.set()


async def run(room_code: str, name: str, server_url: str):
    catalog = fetch_catalog(server_url)
    renderer = ConsoleRenderer(name)
    client = LobbyClient(room_code, renderer, IdentityStore(config.IDENTITY_FILE),
                         catalog=catalog, url=server_url)
    try:
        await client.mount()
    except SocketConnectionError as e:
        logger.error("Could not connect to %s: %s", server_url, e)
        await client.unmount()
        return
    try:
        await renderer.left.wait()
    finally:
        await client.unmount()


def main():
    parser = argparse.ArgumentParser(description="Join a party lobby from the terminal.")
    parser.add_argument("room", help="room code")
    parser.add_argument("--name", default="", help="display name to claim")
    parser.add_argument("--server", default=config.SERVER_URL, help="lobby server URL")
    args = parser.parse_args()

    config.setup_logging()
    try:
        asyncio.run(run(args.room.upper(), args.name, args.server))
    except KeyboardInterrupt:
        logger.info("Bye")


if __name__ == "__main__":
    main()
