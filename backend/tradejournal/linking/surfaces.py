"""Where the broker's login page gets opened."""

import logging
import webbrowser
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class LoginSurface(ABC):
    """Opens a broker login page. Returning None means the surface was blocked."""

    @abstractmethod
    def open(self, url: str, name: str, width: int, height: int) -> object | None:
        ...


class BrowserLoginSurface(LoginSurface):
    """System web browser, used by the CLI."""

    def open(self, url: str, name: str, width: int, height: int) -> object | None:
        try:
            opened = webbrowser.open_new(url)
        except webbrowser.Error as e:
            logger.warning(f"Could not launch browser for {name}: {e}")
            return None
        return url if opened else None


class ClientLoginSurface(LoginSurface):
    """The calling web client opens the window itself from the returned view."""

    def open(self, url: str, name: str, width: int, height: int) -> object | None:
        return url
