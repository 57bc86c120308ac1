from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional

from selenium import webdriver
from selenium.common.exceptions import (
    InvalidSessionIdException,
    NoSuchWindowException,
    WebDriverException,
)
from selenium.webdriver.chrome.options import Options

from .errors import SessionError

logger = logging.getLogger(__name__)

DEFAULT_WEBDRIVER_URL = "http://localhost:9515"

# Errors after which the browser behind a driver cannot be reused.
SESSION_LOST_ERRORS = (InvalidSessionIdException, NoSuchWindowException, SessionError)


@dataclass(frozen=True)
class Fingerprint:
    user_agent: str
    platform: str
    accept_language: str = "pt-BR,pt;q=0.9,en-US;q=0.8,en;q=0.7"


FINGERPRINTS: List[Fingerprint] = [
    Fingerprint(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        "Win32",
    ),
    Fingerprint(
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        "MacIntel",
    ),
    Fingerprint(
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        "Linux x86_64",
    ),
    Fingerprint(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
        "Win32",
    ),
    Fingerprint(
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15",
        "MacIntel",
    ),
]

STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', {get: () => undefined});
Object.defineProperty(navigator, 'plugins', {get: () => [1, 2, 3, 4, 5]});
Object.defineProperty(navigator, 'languages', {get: () => ['pt-BR', 'pt', 'en-US', 'en']});
window.chrome = {runtime: {}};
Object.defineProperty(navigator, 'permissions', {
    get: () => ({query: () => Promise.resolve({state: 'granted'})})
});
"""


def fingerprint_for(index: int) -> Fingerprint:
    return FINGERPRINTS[index % len(FINGERPRINTS)]


SESSION_LOST_ERROR_TYPES = frozenset(cls.__name__ for cls in SESSION_LOST_ERRORS)


def is_session_lost(error_type: Optional[str]) -> bool:
    return error_type in SESSION_LOST_ERROR_TYPES


class SessionFactory(ABC):
    """Creates browser driver handles for the pool."""

    @abstractmethod
    def create(self, fingerprint: Fingerprint) -> Any:
        """Return a ready driver using the given fingerprint."""

    def quit(self, driver: Any) -> None:
        driver.quit()


class ChromeSessionFactory(SessionFactory):
    """Chrome sessions on a remote WebDriver endpoint with automation signals masked."""

    def __init__(
        self,
        webdriver_url: str = DEFAULT_WEBDRIVER_URL,
        headless: bool = True,
        page_load_timeout: int = 60,
    ) -> None:
        self._webdriver_url = webdriver_url
        self._headless = headless
        self._page_load_timeout = page_load_timeout

    def build_options(self, fingerprint: Fingerprint) -> Options:
        options = Options()
        if self._headless:
            options.add_argument("--headless=new")
        options.add_argument("--no-sandbox")
        options.add_argument("--disable-dev-shm-usage")
        options.add_argument("--disable-gpu")
        options.add_argument("--window-size=1920,1080")
        options.add_argument(f"--user-agent={fingerprint.user_agent}")
        options.add_argument(f"--lang={fingerprint.accept_language.split(',')[0]}")
        options.add_argument("--disable-blink-features=AutomationControlled")
        options.add_experimental_option("excludeSwitches", ["enable-automation"])
        options.add_experimental_option("useAutomationExtension", False)
        return options

    def create(self, fingerprint: Fingerprint) -> Any:
        try:
            driver = webdriver.Remote(
                command_executor=self._webdriver_url,
                options=self.build_options(fingerprint),
            )
        except WebDriverException as exc:
            raise SessionError(f"Failed to connect to WebDriver at {self._webdriver_url}: {exc}") from exc

        driver.set_page_load_timeout(self._page_load_timeout)
        self._apply_stealth(driver, fingerprint)
        return driver

    @staticmethod
    def _apply_stealth(driver: Any, fingerprint: Fingerprint) -> None:
        # CDP is only exposed by chromium drivers; fall back to a one-shot script.
        try:
            driver.execute_cdp_cmd("Page.addScriptToEvaluateOnNewDocument", {"source": STEALTH_SCRIPT})
            driver.execute_cdp_cmd(
                "Network.setUserAgentOverride",
                {
                    "userAgent": fingerprint.user_agent,
                    "platform": fingerprint.platform,
                    "acceptLanguage": fingerprint.accept_language,
                },
            )
        except (AttributeError, WebDriverException):
            try:
                driver.execute_script(STEALTH_SCRIPT)
            except WebDriverException as exc:
                logger.debug("Could not inject stealth script: %s", exc)


class SessionSlot:
    """One pooled browser session with a fixed identity fingerprint."""

    def __init__(self, index: int, fingerprint: Fingerprint, factory: SessionFactory) -> None:
        self.index = index
        self.fingerprint = fingerprint
        self._factory = factory
        self._driver: Optional[Any] = None
        self._broken = True

    @property
    def driver(self) -> Any:
        if self._driver is None or self._broken:
            raise SessionError(f"slot {self.index} has no usable session")
        return self._driver

    @property
    def broken(self) -> bool:
        return self._broken

    def open(self) -> None:
        """(Re)create the browser session, discarding any previous one."""
        self.close()
        self._driver = self._factory.create(self.fingerprint)
        self._broken = False
        logger.info("Session slot %d ready (%s)", self.index, self.fingerprint.platform)

    def mark_broken(self) -> None:
        self._broken = True

    def close(self) -> None:
        """Quit the session; errors from an already dead browser are ignored."""
        driver, self._driver = self._driver, None
        self._broken = True
        if driver is None:
            return
        try:
            self._factory.quit(driver)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Error quitting session slot %d: %s", self.index, exc)
