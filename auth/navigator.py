"""Send the user back to sign in once the session can't be recovered."""

import logging
from typing import Callable

log = logging.getLogger(__name__)


class LoginNavigator:
    def __init__(self, login_path: str = "/login", on_redirect: Callable[[str], None] | None = None):
        self._login_path = login_path
        self._on_redirect = on_redirect
        self.current_path = "/"

    @property
    def login_path(self) -> str:
        return self._login_path

    def redirect_to_login(self):
        # Already there: redirecting again would loop
        if self._login_path in self.current_path:
            log.debug("Already on %s, not redirecting", self.current_path)
            return
        log.warning("Session expired, redirecting to %s", self._login_path)
        self.current_path = self._login_path
        if self._on_redirect:
            self._on_redirect(self._login_path)
