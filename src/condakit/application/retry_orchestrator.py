"""Retry orchestrator - runs a command until it succeeds or the budget is spent"""

import logging
import random
import shutil
import time
from datetime import datetime
from typing import Callable, Optional

from tenacity import RetryCallState, Retrying, retry_if_result

from condakit.domain.config.retry import RetryPolicy
from condakit.domain.errors import UsageError
from condakit.domain.models.attempt import (
    AttemptRecord,
    AttemptState,
    ExitOutcome,
    RunResult,
    RunStatus,
)
from condakit.domain.models.command import Command, ToolChoice
from condakit.infrastructure.backoff import jittered_delay, next_delay, stop_for_policy
from condakit.infrastructure.executor import Executor, SubprocessExecutor
from condakit.infrastructure.reporter import AttemptReporter
from condakit.infrastructure.tool_selector import Which, resolve_request

logger = logging.getLogger(__name__)

StopPredicate = Callable[[RetryCallState], bool]


class RetryOrchestrator:
    """Drives attempts of a command with exponential backoff and jitter.

    The loop itself is a ``tenacity.Retrying`` instance built per run:

    - ``before`` advances the delay chain (from the second attempt on) and
      announces the attempt;
    - ``retry`` retries on any non-zero exit, never on exceptions;
    - ``after`` reports the failure before termination is evaluated;
    - ``stop`` is the termination predicate (policy budget unless overridden);
    - ``wait`` draws the jittered sleep from the current delay.

    Each call to ``run`` owns a fresh AttemptState, so one orchestrator can be
    reused for independent runs.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        executor: Optional[Executor] = None,
        reporter: Optional[AttemptReporter] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], None] = time.sleep,
        which: Which = shutil.which,
        stop: Optional[StopPredicate] = None,
    ):
        """Initialize orchestrator

        Args:
            policy: Validated retry policy
            executor: Runs one attempt (subprocess executor if None)
            reporter: Progress sink (stderr reporter if None)
            rng: Random source for jitter
            sleep: Blocking sleep function
            which: PATH lookup used for tool selection
            stop: Termination predicate overriding the policy's attempt budget
        """
        self.policy = policy
        self.executor = executor or SubprocessExecutor()
        self.reporter = reporter or AttemptReporter()
        self.rng = rng or random.Random()
        self.sleep = sleep
        self.which = which
        self.stop = stop

    def run(self, command: Command) -> RunResult:
        """Run a command with retries

        Args:
            command: Command to run

        Returns:
            RunResult: succeeded with the attempt count, or exhausted with the
            child's last exit code

        Raises:
            UsageError: If the command has no operands
            ToolNotFoundError: If no executable can be resolved
            KeyboardInterrupt: If interrupted while attempting or sleeping
        """
        if not command.operands:
            raise UsageError("at least one argument is required")

        choice = resolve_request(command.tool, which=self.which)
        logger.info(f"Using {choice.executable} ({choice.strategy.value}) at {choice.path}")

        state = AttemptState.start(self.policy)
        retrying = self._build_retrying(state, command, choice)

        try:
            outcome = retrying(self.executor.run, command.argv(choice))
        except KeyboardInterrupt:
            self.reporter.interrupted(state.attempt_index, sleeping=state.sleeping)
            raise

        if outcome.succeeded:
            self.reporter.succeeded(state.attempt_index)
            return RunResult(RunStatus.SUCCEEDED, attempts_taken=state.attempt_index)

        self.reporter.exhausted(state.attempt_index, state.last_exit_code)
        return RunResult(
            RunStatus.EXHAUSTED,
            attempts_taken=state.attempt_index,
            last_exit_code=state.last_exit_code,
        )

    def _build_retrying(self, state: AttemptState, command: Command, choice: ToolChoice) -> Retrying:
        def before(retry_state: RetryCallState) -> None:
            if retry_state.attempt_number > 1:
                state.current_delay = next_delay(
                    state.current_delay, self.policy.backoff_multiplier, self.policy.max_delay
                )
                logger.debug(f"Base delay is now {state.current_delay:.3f}s")
            state.attempt_index = retry_state.attempt_number
            state.pending_sleep = None
            state.sleeping = False
            self.reporter.attempt_started(
                state.attempt_index, self.policy.max_attempts, choice.executable, command.operands
            )

        def after(retry_state: RetryCallState) -> None:
            outcome: ExitOutcome = retry_state.outcome.result()
            state.last_exit_code = outcome.exit_code
            self.reporter.attempt_failed(
                AttemptRecord(
                    index=state.attempt_index,
                    timestamp=datetime.now().astimezone(),
                    command_line=command.display(choice),
                    outcome=outcome,
                )
            )

        def wait(retry_state: RetryCallState) -> float:
            state.pending_sleep = jittered_delay(state.current_delay, self.policy.jitter, self.rng)
            return state.pending_sleep

        def before_sleep(retry_state: RetryCallState) -> None:
            state.sleeping = True
            self.reporter.sleeping(state.pending_sleep)

        def give_up(retry_state: RetryCallState) -> ExitOutcome:
            return retry_state.outcome.result()

        return Retrying(
            stop=self.stop or stop_for_policy(self.policy),
            wait=wait,
            retry=retry_if_result(lambda outcome: not outcome.succeeded),
            before=before,
            after=after,
            before_sleep=before_sleep,
            retry_error_callback=give_up,
            sleep=self.sleep,
        )
