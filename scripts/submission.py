#!/usr/bin/env python3
"""
Prompt submission and completion polling.

One QueryRun per prompt walks
    IDLE -> INPUT_LOCATED -> SUBMITTED -> GENERATING -> COMPLETE | TIMED_OUT
Completion is judged from page text: while AI Studio shows its busy marker
the run is still generating. Once it disappears we wait a little longer so
the last chunks finish rendering before extraction.
"""

from enum import Enum

from config import (
    BUSY_MARKER, GEMINI_INPUT_SELECTORS, GEMINI_SEND_SELECTORS,
    LOCATOR_TIMEOUT, POLL_INTERVAL, SETTLE_DELAY, SUBMIT_DELAY,
)
from diag import log
from element_locator import find_element, require_element
from errors import ElementNotFoundError, ResponseTimeoutError


class QueryState(Enum):
    IDLE = "idle"
    INPUT_LOCATED = "input_located"
    SUBMITTED = "submitted"
    GENERATING = "generating"
    COMPLETE = "complete"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


_TRANSITIONS = {
    QueryState.IDLE: {QueryState.INPUT_LOCATED, QueryState.FAILED},
    QueryState.INPUT_LOCATED: {QueryState.SUBMITTED, QueryState.FAILED},
    QueryState.SUBMITTED: {QueryState.GENERATING, QueryState.FAILED},
    QueryState.GENERATING: {QueryState.COMPLETE, QueryState.TIMED_OUT, QueryState.FAILED},
}


class QueryRun:
    """Submission and completion state for a single prompt."""

    def __init__(
        self,
        page,
        verbose: bool = False,
        poll_interval: float = POLL_INTERVAL,
        settle_delay: float = SETTLE_DELAY,
        busy_marker: str = BUSY_MARKER,
    ):
        self.page = page
        self.verbose = verbose
        self.poll_interval = poll_interval
        self.settle_delay = settle_delay
        self.busy_marker = busy_marker
        self.state = QueryState.IDLE
        self.input_element = None
        self.waited = 0.0

    def _transition(self, new_state: QueryState):
        if new_state not in _TRANSITIONS.get(self.state, set()):
            raise RuntimeError(f"Invalid query transition {self.state.value} -> {new_state.value}")
        log(f"query: {self.state.value} -> {new_state.value}", self.verbose)
        self.state = new_state

    async def locate_input(self):
        try:
            self.input_element = await require_element(
                self.page, "prompt input", GEMINI_INPUT_SELECTORS,
                timeout=LOCATOR_TIMEOUT, verbose=self.verbose,
            )
        except ElementNotFoundError:
            self._transition(QueryState.FAILED)
            raise
        self._transition(QueryState.INPUT_LOCATED)
        return self.input_element

    async def submit(self, prompt: str):
        """Type the prompt and send it: Enter first, then the Run button."""
        if self.state is QueryState.IDLE:
            await self.locate_input()
        if self.state is not QueryState.INPUT_LOCATED:
            raise RuntimeError(f"Cannot submit from state {self.state.value}")

        page = self.page
        await page.click(self.input_element)
        await page.press_key("Control+A")
        await page.fill(self.input_element, prompt)
        log(f"query: prompt entered ({len(prompt)} chars)", self.verbose)

        await page.press_key("Enter")
        await page.sleep(SUBMIT_DELAY)

        # Enter alone does not always trigger a run; clicking a stale button is harmless
        send_button = await find_element(page, "send", GEMINI_SEND_SELECTORS,
                                         timeout=0, verbose=self.verbose)
        if send_button is not None:
            try:
                await page.click(send_button)
            except Exception as e:
                log(f"query: send button click ignored: {e}", self.verbose)

        self._transition(QueryState.SUBMITTED)

    async def wait_for_completion(self, timeout: float) -> float:
        """Poll until the busy marker is gone. Returns seconds spent polling.

        Raises ResponseTimeoutError once `timeout` seconds of polling elapse
        with the marker still present.
        """
        if self.state is not QueryState.SUBMITTED:
            raise RuntimeError(f"Cannot wait for completion from state {self.state.value}")

        page = self.page
        await page.sleep(self.poll_interval)
        self._transition(QueryState.GENERATING)

        self.waited = 0.0
        while self.waited < timeout:
            await page.sleep(self.poll_interval)
            self.waited += self.poll_interval

            body = await page.text_content()
            if self.busy_marker in body:
                log(f"query: still generating... ({self.waited:g}s)", self.verbose)
                continue

            log("query: generation finished", self.verbose)
            await page.sleep(self.settle_delay)
            self._transition(QueryState.COMPLETE)
            return self.waited

        self._transition(QueryState.TIMED_OUT)
        raise ResponseTimeoutError(timeout, self.waited + self.poll_interval)
