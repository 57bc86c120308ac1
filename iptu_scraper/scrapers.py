from __future__ import annotations

import logging
import re
import time
from typing import Any, Callable, Dict, List, Optional

from selenium.common.exceptions import NoSuchElementException, TimeoutException, WebDriverException
from selenium.webdriver.common.by import By
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from .base import BaseExtractor
from .errors import InvalidJobError, PageNotLoadedError
from .models import IptuRecord, Job
from .pacing import PacingPolicy

logger = logging.getLogger(__name__)

IPTU_FORM_URL = "https://www3.prefeitura.sp.gov.br/sf8663/formsinternet/principal.aspx"

# Result page input names -> IptuRecord fields.
RESULT_FIELDS: Dict[str, str] = {
    "txtNumIPTU": "numero_cadastro",
    "txtProprietarioNome": "nome_proprietario",
    "txtCompromissarioNome": "nome_compromissario",
    "txtEndereco": "endereco",
    "txtNumero": "numero",
    "txtComplemento": "complemento",
    "txtBairro": "bairro",
    "txtCepImovel": "cep",
}
CRITICAL_FIELDS = ("txtNumIPTU", "txtProprietarioNome")

# The contributor number is typed into four boxes: 3 + 3 + 4 + 1 digits.
FORM_SPLITS = ((0, 3), (3, 6), (6, 10), (10, 11))

ACCEPT_COOKIES_JS = """
var buttons = document.querySelectorAll('input[type="button"], button');
for (var i = 0; i < buttons.length; i++) {
    var text = (buttons[i].value || buttons[i].textContent || '').toLowerCase();
    if (text.includes('autorizo') && text.includes('cookies')) {
        buttons[i].click();
        return true;
    }
}
var fallback = document.querySelector('input.cc__button__autorizacao--all');
if (fallback) { fallback.click(); return true; }
return false;
"""

COOKIE_MODAL_PRESENT_JS = """
var buttons = document.querySelectorAll('input[type="button"]');
for (var i = 0; i < buttons.length; i++) {
    var text = (buttons[i].value || '').toLowerCase();
    if (text.includes('autorizo') && text.includes('cookies')) { return true; }
}
return false;
"""

SUBMIT_JS = """
var btn = document.getElementById('_BtnAvancarDasii');
if (btn) { btn.click(); return true; }
return false;
"""


def normalize_contributor_number(value: str) -> str:
    """Strip punctuation from a contributor number; it must leave 11 digits."""
    digits = re.sub(r"\D", "", value or "")
    if len(digits) != 11:
        raise InvalidJobError(f"invalid contributor number {value!r}: expected 11 digits")
    return digits


def split_for_form(digits: str) -> List[str]:
    return [digits[a:b] for a, b in FORM_SPLITS]


class IptuExtractor(BaseExtractor):
    """Looks up one contributor number on the São Paulo IPTU form."""

    def __init__(
        self,
        pacing: Optional[PacingPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
        result_timeout: int = 60,
        blocked_pause_secs: float = 120.0,
        cookie_attempts: int = 3,
        url: str = IPTU_FORM_URL,
    ) -> None:
        self._pacing = pacing or PacingPolicy()
        self._sleep = sleep
        self._result_timeout = result_timeout
        self._blocked_pause = blocked_pause_secs
        self._cookie_attempts = cookie_attempts
        self._url = url

    def validate(self, job: Job) -> None:
        normalize_contributor_number(job.key)

    def extract(self, job: Job, driver: Any) -> IptuRecord:
        digits = normalize_contributor_number(job.key)
        logger.info("Starting scrape for: %s", job.key)

        driver.get(self._url)
        self._sleep(self._pacing.random_duration())

        if self._pacing.chance(0.3):
            self._idle_pauses()

        self._accept_cookies(driver)
        self._fill_form(driver, digits)
        self._submit(driver)
        self._wait_for_results(driver)

        if self._pacing.chance(0.4):
            self._random_scroll(driver)

        return self._read_record(driver)

    def _idle_pauses(self) -> None:
        for _ in range(self._pacing.randint(2, 5)):
            self._sleep(self._pacing.keystroke() + 0.3)

    def _random_scroll(self, driver: Any) -> None:
        for _ in range(self._pacing.randint(3, 7)):
            try:
                driver.execute_script(f"window.scrollBy(0, {self._pacing.randint(200, 800)});")
            except WebDriverException as exc:
                logger.debug("Scroll failed: %s", exc)
                return
            self._sleep(self._pacing.keystroke() + 0.5)

    def _accept_cookies(self, driver: Any) -> bool:
        self._sleep(4)
        for attempt in range(1, self._cookie_attempts + 1):
            logger.info("Cookie consent attempt %d/%d", attempt, self._cookie_attempts)
            try:
                driver.execute_script(ACCEPT_COOKIES_JS)
                self._sleep(3)
                if not driver.execute_script(COOKIE_MODAL_PRESENT_JS):
                    logger.info("Cookie modal dismissed")
                    return True
            except WebDriverException as exc:
                logger.debug("Cookie consent script failed: %s", exc)
            if attempt < self._cookie_attempts:
                self._sleep(2)
        logger.warning("Could not dismiss cookie modal, continuing anyway")
        return False

    def _fill_form(self, driver: Any, digits: str) -> None:
        inputs = driver.find_elements(By.CSS_SELECTOR, "input[type='text']")
        logger.info("Found %d input fields", len(inputs))
        if len(inputs) < len(FORM_SPLITS):
            raise PageNotLoadedError("contributor number input fields not found")

        parts = split_for_form(digits)
        for i, (field, part) in enumerate(zip(inputs, parts), start=1):
            field.clear()
            self._sleep(self._pacing.keystroke())
            field.send_keys(part)
            logger.info("Filled field %d: %s", i, part)
            if i < len(parts):
                self._sleep(self._pacing.keystroke())
        self._sleep(3)

    def _submit(self, driver: Any) -> None:
        logger.info("Submitting form...")
        clicked = driver.execute_script(SUBMIT_JS)
        if not clicked:
            raise PageNotLoadedError("submit button not found")

    def _wait_for_results(self, driver: Any) -> None:
        locators = [EC.presence_of_element_located((By.NAME, name)) for name in CRITICAL_FIELDS]
        try:
            WebDriverWait(driver, self._result_timeout).until(EC.any_of(*locators))
        except TimeoutException:
            logger.error("Critical elements not found, page failed to load properly")
            logger.warning("Pausing for %d seconds to avoid rate limiting...", int(self._blocked_pause))
            self._sleep(self._blocked_pause)
            raise PageNotLoadedError(
                "page did not load results correctly, server may be rate limiting"
            ) from None

    def _read_record(self, driver: Any) -> IptuRecord:
        values: Dict[str, Optional[str]] = {}
        for name, attr in RESULT_FIELDS.items():
            try:
                element = driver.find_element(By.NAME, name)
            except NoSuchElementException:
                logger.debug("%s element not found (empty)", name)
                values[attr] = None
                continue
            values[attr] = element_value(element)
            logger.debug("Found %s: %r", name, values[attr])
        return IptuRecord(**values)


def element_value(element: Any) -> Optional[str]:
    """Value of an input or text of any element, whichever is non-empty."""
    for read in (
        lambda: element.get_property("value"),
        lambda: element.text,
        lambda: element.get_attribute("value"),
    ):
        try:
            value = read()
        except WebDriverException:
            continue
        if value:
            return str(value).strip()
    return None
