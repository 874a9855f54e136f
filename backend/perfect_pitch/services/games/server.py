import logging
import random
import time
from typing import Callable, Optional

from .matchmaking import MatchmakingQueue
from .registry import SessionRegistry
from .settings import GameSettings


logger = logging.getLogger(__name__)

EXTENSION_KEY = 'perfect_pitch'


class GameServer:
    """The matchmaking queue and session registry for one app instance."""

    def __init__(
        self,
        settings: GameSettings,
        scheduler,
        store,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.scheduler = scheduler
        self.store = store
        self.registry = SessionRegistry(settings, scheduler, store, rng=rng)
        self.queue = MatchmakingQueue(self.registry, settings, scheduler=scheduler, clock=clock)

    def start(self) -> None:
        self.queue.start()

    def stop(self) -> None:
        self.queue.stop()
        self.registry.shutdown()

    def handle_disconnect(self, player_id) -> None:
        self.queue.dequeue(player_id)
        if self.registry.on_disconnect(player_id):
            logger.info(f"[disconnect-forfeit] player={player_id}")


def get_game_server(app) -> GameServer:
    return app.extensions[EXTENSION_KEY]
