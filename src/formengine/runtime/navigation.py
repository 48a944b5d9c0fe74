"""
Step navigation state machine.

States are the configured step indices plus a terminal "submitted" state.
Hidden steps (``conditionalRender`` false) are skipped. No transition is
possible while a submission is in flight or after it succeeded.

Jump policy for ``go_to_step``:
- backward jumps are always allowed;
- forward jumps require every gating step from the current one up to
  (not including) the target to validate;
- with ``allowStepSkipping``, a previously visited step may be reached
  without validation.
"""

from __future__ import annotations

import logging

from formengine.core.config import FormConfig, FormStep
from formengine.runtime.state import FormState
from formengine.runtime.validation import FormValidator

logger = logging.getLogger(__name__)


class StepNavigator:
    """Drives ``FormState.current_step`` for one form."""

    def __init__(self, config: FormConfig, state: FormState, validator: FormValidator) -> None:
        self.config = config
        self.state = state
        self.validator = validator

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def current_index(self) -> int:
        return self.state.current_step

    @property
    def current_step(self) -> FormStep:
        return self.config.steps[self.state.current_step]

    @property
    def locked(self) -> bool:
        return self.state.is_submitting or self.state.is_submitted

    def is_visible(self, index: int) -> bool:
        if not 0 <= index < len(self.config.steps):
            return False
        return self.config.steps[index].is_visible(self.state.values)

    def visible_steps(self) -> list[int]:
        return [i for i in range(len(self.config.steps)) if self.is_visible(i)]

    def next_visible(self, index: int) -> int | None:
        for candidate in range(index + 1, len(self.config.steps)):
            if self.is_visible(candidate):
                return candidate
        return None

    def previous_visible(self, index: int) -> int | None:
        for candidate in range(index - 1, -1, -1):
            if self.is_visible(candidate):
                return candidate
        return None

    @property
    def is_first(self) -> bool:
        return self.previous_visible(self.state.current_step) is None

    @property
    def is_review(self) -> bool:
        """True on the last visible step, where submission happens."""
        return self.next_visible(self.state.current_step) is None

    @property
    def progress(self) -> float:
        visible = self.visible_steps()
        if not visible or self.state.current_step not in visible:
            return 0.0
        return (visible.index(self.state.current_step) + 1) / len(visible)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_step(self, index: int) -> bool:
        """Validate one step's members, replacing their errors in state."""
        members = self.config.steps[index].members
        errors = self.validator.validate_members(members, self.state.values)
        for name in members:
            self.state.errors.pop(name, None)
        self.state.errors.update(errors)
        self.state.touched_fields.update(members)
        return not errors

    def validate_all(self) -> bool:
        """Validate every visible step; errors for all members are replaced."""
        errors = self.validator.validate_all(self.state.values)
        self.state.errors = errors
        for index in self.visible_steps():
            self.state.touched_fields.update(self.config.steps[index].members)
        return not errors

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _move(self, index: int) -> None:
        logger.debug(f"{self.config.entity}: step {self.state.current_step} -> {index}")
        self.state.current_step = index
        self.state.visited_steps.add(index)

    def next(self) -> bool:
        """Advance one visible step, validating the active step first if it gates."""
        if self.locked:
            return False
        current = self.state.current_step
        if self.config.step_validates_on_next(current) and not self.validate_step(current):
            return False
        target = self.next_visible(current)
        if target is None:
            return False
        self._move(target)
        return True

    def prev(self) -> bool:
        if self.locked:
            return False
        target = self.previous_visible(self.state.current_step)
        if target is None:
            return False
        self._move(target)
        return True

    def go_to_step(self, index: int) -> bool:
        """Jump to ``index`` under the jump policy. Returns whether the step changed."""
        if self.locked or not self.is_visible(index):
            return False
        current = self.state.current_step
        if index == current:
            return False
        if index < current:
            self._move(index)
            return True
        if (
            self.config.behavior.navigation.allow_step_skipping
            and index in self.state.visited_steps
        ):
            self._move(index)
            return True
        for step_index in range(current, index):
            if not self.is_visible(step_index):
                continue
            if self.config.step_validates_on_next(step_index) and not self.validate_step(
                step_index
            ):
                logger.debug(f"{self.config.entity}: jump to {index} blocked at step {step_index}")
                return False
        self._move(index)
        return True

    def restore(self, index: int) -> None:
        """Place the machine on a hydrated step without validation."""
        index = max(0, min(index, len(self.config.steps) - 1))
        self.state.current_step = index
        self.state.visited_steps.update(range(index + 1))

    def mark_submitted(self) -> None:
        self.state.is_submitted = True
