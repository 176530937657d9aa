"""Flow controller — owns one onboarding attempt from start to session.

The controller holds the current ``FlowState``, applies the pure transitions
from ``authflow.flow.transitions``, and runs the side effects they ask for:
the debounced existence check, backend calls through the identity adapter, and
the resend countdown. The rendering layer reads ``snapshot()`` (or subscribes
to it) and calls the actions; it never edits step state itself.

All methods must be called from the event loop that runs the flow.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable

from authflow.config import FlowTimings
from authflow.errors import AuthError, ConfigurationError
from authflow.flow import transitions
from authflow.flow.existence import ExistenceChecker
from authflow.flow.resend import ResendTimer
from authflow.flow.scheduler import AsyncioScheduler, Scheduler
from authflow.flow.transitions import Advance, Effect
from authflow.identity.adapter import IdentityProviderAdapter, create_identity_providers
from authflow.identity.base import IdentityBackend, Subscription
from authflow.mode import resolve_mode
from authflow.models.flow import ExistenceCheck, FlowSnapshot, FlowState, Step
from authflow.models.options import AuthMode, AuthOptions
from authflow.validators import is_valid_email, normalize_email

logger = logging.getLogger(__name__)

Listener = Callable[[FlowSnapshot], None]

_START_STEPS = (Step.START, Step.EMAIL)


class FlowController:
    """State machine for one flow instance.

    ``start_at`` is the step the flow opens on and returns to on ``reset``;
    either ``start`` (landing button first) or ``email``.
    """

    def __init__(
        self,
        adapter: IdentityProviderAdapter,
        options: AuthOptions | dict | None = None,
        *,
        start_at: Step | str = Step.START,
        timings: FlowTimings | None = None,
        scheduler: Scheduler | None = None,
        rng: random.Random | None = None,
        on_close: Callable[[], None] | None = None,
    ) -> None:
        if adapter is None:
            raise ConfigurationError("An identity provider adapter is required.")
        start_at = Step(start_at)
        if start_at not in _START_STEPS:
            raise ValueError(f"start_at must be 'start' or 'email', got {start_at.value!r}")

        self._adapter = adapter
        self._mode = resolve_mode(options)
        self._start_at = start_at
        self._timings = timings or FlowTimings()
        self._scheduler = scheduler or AsyncioScheduler()
        self._on_close = on_close
        self._listeners: list[Listener] = []
        # Bumped by reset; effects started under an older epoch are discarded.
        self._epoch = 0

        self._state = transitions.initial_state(start_at)
        self._checker = ExistenceChecker(
            adapter.password.check_identity_exists,
            self._scheduler,
            self._timings,
            is_current=self._is_current_check,
            publish=self._publish_check,
            rng=rng,
        )
        self._resend = ResendTimer(
            self._scheduler, self._on_resend_tick, tick_seconds=self._timings.tick_seconds
        )
        logger.debug("Flow created in %s mode at step %s", self._mode.value, start_at.value)

    @classmethod
    def from_backend(
        cls,
        backend: IdentityBackend | None,
        options: AuthOptions | dict | None = None,
        **kwargs,
    ) -> FlowController:
        """Build the adapter for ``backend`` and a controller on top of it."""
        return cls(create_identity_providers(backend), options, **kwargs)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def mode(self) -> AuthMode:
        return self._mode

    @property
    def start_at(self) -> Step:
        return self._start_at

    @property
    def state(self) -> FlowState:
        return self._state

    @property
    def adapter(self) -> IdentityProviderAdapter:
        return self._adapter

    @property
    def can_continue(self) -> bool:
        return transitions.can_continue(self._state, self._mode)

    @property
    def can_resend_code(self) -> bool:
        return transitions.can_resend_code(self._state)

    def snapshot(self) -> FlowSnapshot:
        state, mode = self._state, self._mode
        return FlowSnapshot(
            mode=mode,
            step=state.step,
            name=state.name,
            email=state.email,
            password=state.password,
            code_input=state.code_input,
            busy=state.busy,
            error_message=state.error_message,
            check_status=state.check.status,
            email_exists=state.check.exists,
            resend_seconds=state.resend_seconds,
            completed=state.completed,
            outcome=state.outcome,
            is_new_user=transitions.is_new_user(state, mode),
            is_existing_user=transitions.is_existing_user(state, mode),
            email_is_valid=is_valid_email(state.email),
            can_continue=transitions.can_continue(state, mode),
            can_resend_code=transitions.can_resend_code(state),
            primary_button_label=transitions.primary_button_label(state.step),
        )

    def subscribe(self, listener: Listener) -> Subscription:
        """Call ``listener`` with a fresh snapshot after every state change."""
        self._listeners.append(listener)

        def _release() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return Subscription(_release)

    # ------------------------------------------------------------------
    # Field setters
    # ------------------------------------------------------------------

    def set_email(self, email: str) -> None:
        """Edit the email field. Only the Email step shows it, and never while busy."""
        state = self._state
        if state.step is not Step.EMAIL or state.busy or email == state.email:
            return
        # Synchronous: no stale READY may survive an edit, even for one tick.
        self._commit(
            state.evolve(
                email=email, error_message="", check=transitions.invalidated(state.check)
            )
        )

    def set_name(self, name: str) -> None:
        self._commit(self._state.evolve(name=name))

    def set_password(self, password: str) -> None:
        self._commit(self._state.evolve(password=password))

    def set_code(self, code: str) -> None:
        self._commit(self._state.evolve(code_input=code))

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._state.step is not Step.START:
            return
        self._commit(transitions.advance(self._state, self._mode).state)

    def reset(self) -> None:
        """Full reset to the opening step. Cancels timers and orphans in-flight calls."""
        self._epoch += 1
        self._resend.stop()
        self._checker.cancel_pending()
        self._commit(transitions.reset(self._state, self._start_at))

    def close(self) -> None:
        self.reset()
        if self._on_close is not None:
            self._on_close()

    def go_back(self) -> None:
        after = transitions.retreat(self._state, self._mode)
        if after != self._state:
            self._commit(after)

    def begin_edit_email(self) -> None:
        after = transitions.edit_email(self._state, self._mode)
        if after != self._state:
            self._commit(after)

    async def go_next(self) -> None:
        """Primary action for the current step."""
        if self._state.busy:
            return
        await self._apply(transitions.advance(self._state, self._mode))

    async def submit(self) -> None:
        """Submit the terminal step: password, code, or profile name."""
        if self._state.busy:
            return
        if self._state.step is Step.PASSWORD:
            await self._apply(transitions.submit_password(self._state))
        elif self._state.step in (Step.CODE, Step.NAME):
            await self._apply(transitions.advance(self._state, self._mode))

    async def resend_code(self) -> bool:
        """Request a fresh code once the countdown reached zero.

        Returns False without contacting the backend while resend is blocked.
        """
        advance = transitions.resend(self._state)
        if advance.effect is None:
            return False
        await self._apply(advance)
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def wait_for_pending(self) -> None:
        """Wait for every started existence check to settle."""
        await self._checker.wait()

    async def aclose(self) -> None:
        self._listeners.clear()
        await self._checker.aclose()
        await self._resend.aclose()

    async def __aenter__(self) -> FlowController:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _commit(self, state: FlowState) -> None:
        previous, self._state = self._state, state
        if state.step is not previous.step:
            logger.debug("Flow moved %s -> %s", previous.step.value, state.step.value)
        if state.check.request_id != previous.check.request_id:
            self._checker.cancel_pending()
            self._schedule_check()
        if state.step is not Step.CODE or state.completed:
            self._resend.stop()
        self._notify()

    def _schedule_check(self) -> None:
        state = self._state
        if self._mode is not AuthMode.PASSWORD or state.step is not Step.EMAIL:
            return
        if not is_valid_email(state.email):
            return
        self._checker.schedule(normalize_email(state.email), state.check.request_id)

    def _is_current_check(self, request_id: int) -> bool:
        return request_id == self._state.check.request_id

    def _publish_check(self, check: ExistenceCheck) -> None:
        if not self._is_current_check(check.request_id):
            return
        self._commit(self._state.evolve(check=check, error_message=""))

    def _on_resend_tick(self, remaining: int) -> None:
        if self._state.step is Step.CODE:
            self._commit(self._state.evolve(resend_seconds=max(remaining, 0)))

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Flow listener failed on step %s", snapshot.step.value)

    async def _apply(self, advance: Advance) -> None:
        self._commit(advance.state)
        if advance.effect is not None:
            await self._run_effect(advance.effect)

    async def _run_effect(self, effect: Effect) -> None:
        epoch = self._epoch
        submitted = self._state
        self._commit(submitted.evolve(busy=True))
        try:
            is_new_identity = await self._perform(effect, submitted)
        except AuthError as exc:
            if epoch != self._epoch:
                logger.debug("Dropping %s failure from a cancelled flow", effect.value)
                return
            logger.warning(
                "%s failed on step %s (%s)", effect.value, submitted.step.value, exc.kind.value
            )
            self._commit(transitions.apply_failure(self._state, exc.message))
            return
        except BaseException:
            if epoch == self._epoch and self._state.busy:
                self._commit(self._state.evolve(busy=False))
            raise

        if epoch != self._epoch:
            logger.debug("Dropping %s result from a cancelled flow", effect.value)
            return
        self._commit(
            transitions.apply_success(
                self._state,
                effect,
                is_new_identity=is_new_identity,
                resend_window=self._timings.resend_window,
            )
        )
        if effect in (Effect.REQUEST_CODE, Effect.RESEND_CODE):
            self._resend.restart(self._timings.resend_window)
        logger.info("%s succeeded", effect.value)

    async def _perform(self, effect: Effect, state: FlowState) -> bool:
        """Run one backend effect. Returns whether the identity is new."""
        email = normalize_email(state.email)
        password_provider = self._adapter.password
        code_provider = self._adapter.code

        if effect is Effect.SIGN_IN:
            await password_provider.sign_in(email=email, password=state.password)
            return False
        if effect is Effect.SIGN_UP:
            await password_provider.sign_up(
                name=state.name.strip(), email=email, password=state.password
            )
            return True
        if effect in (Effect.REQUEST_CODE, Effect.RESEND_CODE):
            await code_provider.request_code(email)
            return False
        if effect is Effect.VERIFY_CODE:
            result = await code_provider.verify_code(email, state.code_input.strip())
            return result.is_new_user
        if effect is Effect.UPDATE_PROFILE:
            await code_provider.update_profile(name=state.name.strip())
            return False
        raise ValueError(f"Unknown effect: {effect}")
