"""
Resilient channel provider
"""
from ...core.interfaces import Channel
from ...core.exceptions import NotConnectedError
from ...core.logging import get_logger
from .models import ChannelRequest
from .session import Session

logger = get_logger(__name__)


class ResilientChannelProvider:
    """
    Hands out channels while hiding session churn from callers.

    Staleness is detected lazily: the first channel open after the session
    silently dropped fails with NotConnectedError, the session is restarted
    and the open is retried exactly once.
    """

    def __init__(self, session: Session):
        self.session = session

    async def obtain_channel(self, request: ChannelRequest) -> Channel:
        """
        Open a channel for a proxy client request.

        Args:
            request: Requested tunnel

        Returns:
            Live channel to request.destination

        Raises:
            ConnectFailure: If the session restart failed
            NotConnectedError: If the session is still gone after one restart
            ChannelOpenFailure: If the destination was rejected
        """
        generation = self.session.generation
        try:
            return await self.session.open_channel(request)
        except NotConnectedError:
            logger.info(f"SSH session not connected, restarting before opening {request.destination}")

        await self.session.restart(observed_generation=generation)
        return await self.session.open_channel(request)
