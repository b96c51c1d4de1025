"""
Base Agent - lifecycle and the shared perceive-analyze-act loop.
"""

import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from core.control import RunControl, StopRequested
from logger import logger

from ..errors import AgentError, OperatorError
from ..events import EventBus, EventType
from ..models import (
    Action,
    ActionResult,
    ActionType,
    AgentConfig,
    AgentStatus,
    ExecutionContext,
    ModelResponse,
    OperatorType,
    Screenshot,
    short_id,
)
from ..operators.base import BaseOperator
from ..session_manager import SessionManager
from ..vision import BaseVisionModel, create_model
from .continuation import should_continue

ConfirmCallback = Callable[[Action], bool]


def _deep_merge(base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in update.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class BaseAgent(ABC):
    """
    Base class for agents.

    Owns one vision model and the operators of its variant, and runs the
    loop: capture, analyze, validate, act, record, decide to continue.

    Subclasses must implement:
        - _capture_state() -> Screenshot
        - _dispatch(action) -> ActionResult

    and may override on_initialize(), on_stop(), _prepare_run(),
    _before_action() and _environment().
    """

    operator_type: OperatorType = OperatorType.LOCAL_COMPUTER
    # Settings applied when the AgentConfig does not set them explicitly
    default_settings: Dict[str, Any] = {}
    stop_timeout: float = 30.0

    def __init__(
        self,
        model: Optional[BaseVisionModel] = None,
        session_manager: Optional[SessionManager] = None,
        confirm_callback: Optional[ConfirmCallback] = None,
    ):
        """
        Args:
            model: Vision model to use instead of the configured provider
            session_manager: Shared session registry (a private one by default)
            confirm_callback: Asked before each action when confirm_actions is on
        """
        self.config: Optional[AgentConfig] = None
        self.status = AgentStatus.IDLE
        self.model: Optional[BaseVisionModel] = None
        self.session_manager = session_manager or SessionManager()
        self.confirm_callback = confirm_callback
        self.control = RunControl()
        self.events = EventBus("agent")
        self.iteration = 0
        self.current_session_id: Optional[str] = None

        self._provided_model = model
        self._initialized = False
        self._in_flight = False
        self._run_thread: Optional[threading.Thread] = None
        self._run_finished = threading.Event()
        self._run_finished.set()
        self._lock = threading.RLock()
        self._last_context: Optional[ExecutionContext] = None

    # --- Properties ---

    @property
    def id(self) -> str:
        return self.config.id if self.config else "agent"

    @property
    def name(self) -> str:
        return self.config.name if self.config else type(self).__name__

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def last_context(self) -> Optional[ExecutionContext]:
        """Context of the latest run (previous actions, environment)."""
        return self._last_context

    # --- Lifecycle ---

    def initialize(self, config: AgentConfig) -> None:
        """
        Create the model and operators for this agent.

        Raises:
            AgentError: if already initialized or if initialization fails
        """
        with self._lock:
            if self._initialized:
                raise AgentError("Agent already initialized", code="ALREADY_INITIALIZED")
            self.config = self._apply_defaults(config)
            self.events.agent_id = self.config.id
            self.control.name = self.config.name
            self._set_status(AgentStatus.INITIALIZING)

        logger.info(f"[AGENT] Initializing {self.name} ({self.operator_type.value})")
        try:
            self.on_initialize()
        except Exception as e:
            logger.error(f"[AGENT] Initialization failed: {e}")
            self._release()
            self._set_status(AgentStatus.ERROR)
            self.events.emit(EventType.ERROR, error=str(e), stage="initialize")
            if isinstance(e, AgentError):
                raise
            raise AgentError(
                f"Failed to initialize agent: {e}", code="INITIALIZATION_FAILED"
            ) from e

        self._initialized = True
        self._set_status(AgentStatus.IDLE)

    def on_initialize(self) -> None:
        """Create the vision model. Variants add their operators."""
        model = self._provided_model or create_model(self.config.model.provider)
        model.language = self.config.settings.language
        model.control = self.control
        if not model.is_initialized:
            model.initialize(self.config.model)
        self.model = model

    def on_stop(self) -> None:
        """Release the vision model. Variants release their operators first."""
        if self.model is not None:
            self.model.cleanup()
            self.model = None

    def pause(self) -> None:
        with self._lock:
            if self.status != AgentStatus.RUNNING:
                raise AgentError(
                    f"Cannot pause agent in {self.status.value} state", code="INVALID_STATE"
                )
            self.control.request_pause()
            self._set_status(AgentStatus.PAUSED)

    def resume(self) -> None:
        with self._lock:
            if self.status != AgentStatus.PAUSED:
                raise AgentError(
                    f"Cannot resume agent in {self.status.value} state", code="INVALID_STATE"
                )
            self.control.request_resume()
            self._set_status(AgentStatus.RUNNING)

    def cancel(self) -> None:
        """Ask a running loop to stop at its next checkpoint. Safe from any thread."""
        logger.info(f"[STOP] Cancel requested for {self.name}")
        self.control.request_stop()

    def stop(self) -> None:
        """
        Stop the agent and release its model and operators.

        Idempotent; always ends in STOPPED. A run in flight is cancelled first.
        """
        if self.status == AgentStatus.STOPPED:
            return

        logger.info(f"[AGENT] Stopping {self.name}")
        self.control.request_stop()
        if self._in_flight and threading.current_thread() is not self._run_thread:
            if not self._run_finished.wait(timeout=self.stop_timeout):
                logger.warning(
                    f"[AGENT] Run did not finish within {self.stop_timeout}s, releasing anyway"
                )

        self.session_manager.clear_old_sessions()
        self._release()
        self._initialized = False
        self._set_status(AgentStatus.STOPPED)

    def _release(self) -> None:
        try:
            self.on_stop()
        except Exception as e:
            logger.error(f"[AGENT] Error releasing resources: {e}", exc_info=True)

    # --- Status & config ---

    def get_status(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.operator_type.value,
            "status": self.status.value,
            "initialized": self._initialized,
            "running": self._in_flight,
            "iteration": self.iteration,
            "max_iterations": self.config.settings.max_iterations if self.config else None,
            "session_id": self.current_session_id,
            "model": self.model.get_model_info() if self.model else None,
            "operators": {
                name: operator.get_status() for name, operator in self.operators().items()
            },
        }

    def get_config(self) -> Optional[AgentConfig]:
        return self.config.model_copy(deep=True) if self.config else None

    def update_config(self, partial: Dict[str, Any]) -> AgentConfig:
        """
        Merge a partial config (nested dicts) into the current one.

        Loop settings apply from the next iteration on; model and operator
        changes apply at the next initialize.
        """
        if self.config is None:
            raise AgentError("Agent not initialized", code="NOT_INITIALIZED")
        merged = _deep_merge(self.config.model_dump(), partial)
        merged["id"] = self.config.id
        try:
            updated = AgentConfig.model_validate(merged)
        except ValidationError as e:
            raise AgentError(f"Invalid configuration: {e}", code="INVALID_CONFIG") from e
        with self._lock:
            self.config = updated
        logger.info(f"[AGENT] Config updated: {sorted(partial)}")
        return updated.model_copy(deep=True)

    def operators(self) -> Dict[str, BaseOperator]:
        """Operators owned by this agent, keyed by name."""
        return {}

    def _apply_defaults(self, config: AgentConfig) -> AgentConfig:
        explicit = config.settings.model_fields_set
        overrides = {k: v for k, v in self.default_settings.items() if k not in explicit}
        if not overrides:
            return config
        settings = config.settings.model_copy(update=overrides)
        return config.model_copy(update={"settings": settings})

    def _set_status(self, status: AgentStatus) -> None:
        with self._lock:
            previous = self.status
            if previous == status:
                return
            self.status = status
        logger.info(f"[AGENT] {self.name}: {previous.value} -> {status.value}")
        self.events.emit(
            EventType.STATUS_CHANGED, previous=previous.value, current=status.value
        )

    def _finish_run_status(self, status: AgentStatus) -> None:
        """Leave RUNNING/PAUSED at the end of a run (a concurrent stop wins)."""
        with self._lock:
            if self.status in (AgentStatus.RUNNING, AgentStatus.PAUSED):
                self._set_status(status)

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise AgentError("Agent not initialized", code="NOT_INITIALIZED")

    # --- Execution ---

    def execute(
        self, instruction: str, context: Optional[ExecutionContext] = None
    ) -> List[ActionResult]:
        """
        Run the loop for one instruction.

        Args:
            instruction: The task in natural language
            context: Optional starting context (previous actions, environment)

        Returns:
            ActionResults in order, including meta markers (max iterations,
            cancellation)

        Raises:
            AgentError: on precondition violations, or when the run fails
                (with the partial results and session id attached)
        """
        self._ensure_initialized()
        if not instruction or not instruction.strip():
            raise AgentError("Instruction must not be empty", code="INVALID_INSTRUCTION")

        with self._lock:
            if self._in_flight:
                raise AgentError("Agent is already executing a task", code="ALREADY_RUNNING")
            if self.status not in (AgentStatus.IDLE, AgentStatus.PAUSED):
                raise AgentError(
                    f"Cannot execute while agent is {self.status.value}", code="INVALID_STATE"
                )
            self._in_flight = True
            self._run_thread = threading.current_thread()
            self._run_finished.clear()
            self.control.reset()

        results: List[ActionResult] = []
        session_id = self.session_manager.create_session(
            instruction,
            metadata={
                "agent_id": self.id,
                "agent_name": self.name,
                "operator_type": self.operator_type.value,
            },
        )
        self.current_session_id = session_id
        self.iteration = 0

        logger.info("=" * 70)
        logger.info(f" {self.name.upper()} - STARTING")
        logger.info("=" * 70)
        logger.info(f"[AGENT] Session: {session_id}")
        logger.info(f"[AGENT] Instruction: {instruction}")
        logger.info(f"[AGENT] Max iterations: {self.config.settings.max_iterations}")

        self._set_status(AgentStatus.RUNNING)
        self.events.emit(
            EventType.EXECUTION_STARTED, session_id=session_id, instruction=instruction
        )

        try:
            self._run_loop(instruction, context, session_id, results)

        except StopRequested:
            logger.info("[AGENT] Execution cancelled")
            self._record(
                session_id,
                results,
                ActionResult(
                    action_id=f"cancelled-{short_id()}",
                    success=False,
                    error="Execution cancelled",
                    meta=True,
                    data={"action": "cancelled", "iteration": self.iteration},
                ),
            )
            self.session_manager.cancel_session(session_id)
            self._finish_run_status(AgentStatus.IDLE)

        except Exception as e:
            logger.error(f"[AGENT] Execution failed: {e}", exc_info=True)
            self.session_manager.complete_session(session_id, error=str(e))
            self._finish_run_status(AgentStatus.ERROR)
            self.events.emit(EventType.ERROR, error=str(e), session_id=session_id)
            raise AgentError(
                f"Execution failed: {e}",
                code="EXECUTION_FAILED",
                details={"iteration": self.iteration},
                results=results,
                session_id=session_id,
            ) from e

        else:
            self.session_manager.complete_session(session_id)
            self._finish_run_status(AgentStatus.IDLE)

        finally:
            with self._lock:
                self._in_flight = False
                self._run_thread = None
            self._run_finished.set()
            self.events.emit(
                EventType.EXECUTION_COMPLETED,
                session_id=session_id,
                result_count=len(results),
                iterations=self.iteration,
            )
            logger.info("=" * 70)
            logger.info(f" {self.name.upper()} - {self.status.value.upper()}")
            logger.info(f" Iterations: {self.iteration}, Results: {len(results)}")
            logger.info("=" * 70)

        return results

    def _run_loop(
        self,
        instruction: str,
        context: Optional[ExecutionContext],
        session_id: str,
        results: List[ActionResult],
    ) -> None:
        """
        Perceive/act iterations until a terminal action, a continuation stop,
        an empty plan or max_iterations.

        The max-iterations marker is appended only when the loop runs out of
        iterations; a break on the last iteration (terminal action or failed
        continuation check) ends the run without it.
        """
        exec_context = ExecutionContext(
            session_id=session_id,
            previous_actions=list(context.previous_actions) if context else [],
            environment=dict(context.environment) if context else {},
        )
        self._last_context = exec_context
        self._prepare_run(instruction, exec_context)

        max_iterations = self.config.settings.max_iterations
        while self.iteration < max_iterations:
            self.control.check_should_stop()
            self.iteration += 1
            settings = self.config.settings

            logger.info(f"\n[AGENT] === Iteration {self.iteration}/{max_iterations} ===")
            self.events.emit(
                EventType.ITERATION_STARTED,
                iteration=self.iteration,
                max_iterations=max_iterations,
            )

            screenshot = self._capture_state()
            exec_context.screenshot = screenshot
            exec_context.environment.update(self._environment())
            self.events.emit(
                EventType.SCREENSHOT_CAPTURED,
                screenshot_id=screenshot.id,
                width=screenshot.width,
                height=screenshot.height,
            )

            response = self.model.analyze(screenshot.data, instruction, exec_context)
            self.events.emit(
                EventType.ANALYSIS_COMPLETED,
                reasoning=response.reasoning,
                action_count=len(response.actions),
                confidence=response.confidence,
            )

            if not response.actions:
                logger.info("[AGENT] Model returned no actions, stopping")
                self._iteration_completed(results)
                break

            finished = self._run_actions(response, exec_context, session_id, results)
            self._iteration_completed(results)
            if finished:
                break

            if not should_continue(results, response, settings.continuation):
                break

            if self.iteration < max_iterations:
                logger.info(f"[AGENT] Waiting {settings.iteration_delay}s before next iteration...")
                self.control.stoppable_sleep(settings.iteration_delay)

        else:
            logger.warning(f"[AGENT] Max iterations ({max_iterations}) reached")
            self._record(
                session_id,
                results,
                ActionResult(
                    action_id=f"max-iterations-{short_id()}",
                    success=False,
                    error=f"Reached maximum iterations ({max_iterations}) without completing the task",
                    meta=True,
                    data={"action": "max_iterations_reached", "iterations": max_iterations},
                ),
            )
            self.events.emit(EventType.MAX_ITERATIONS_REACHED, iterations=max_iterations)

    def _run_actions(
        self,
        response: ModelResponse,
        exec_context: ExecutionContext,
        session_id: str,
        results: List[ActionResult],
    ) -> bool:
        """Run one iteration's actions. Returns True when the task ended (finished/call_user)."""
        for action in response.actions:
            self.control.check_should_stop()

            if action.type == ActionType.FINISHED:
                logger.info(f"[AGENT] Task finished: {action.reasoning or response.reasoning}")
                self._record(
                    session_id,
                    results,
                    ActionResult(
                        action_id=action.id,
                        success=True,
                        data={"action": "finished", "reasoning": action.reasoning or response.reasoning},
                    ),
                )
                return True

            if action.type == ActionType.CALL_USER:
                question = (
                    action.param("question") or action.param("message") or action.reasoning
                )
                logger.info(f"[AGENT] User input requested: {question}")
                self._record(
                    session_id,
                    results,
                    ActionResult(
                        action_id=action.id,
                        success=True,
                        data={"action": "call_user", "question": question, "user_input_required": True},
                    ),
                )
                self.events.emit(
                    EventType.USER_INPUT_REQUESTED, action_id=action.id, question=question
                )
                return True

            validation = self.model.validate_action(action, exec_context)
            for warning in validation.warnings:
                logger.warning(f"[AGENT] {action.type.value}: {warning}")
            if not validation.valid:
                error = "Validation failed: " + "; ".join(validation.errors)
                logger.warning(f"[AGENT] Skipping {action.type.value}: {error}")
                self._skip(session_id, results, action, error, suggestions=validation.suggestions)
                continue

            if self.config.settings.confirm_actions and not self._confirm(action):
                self._skip(session_id, results, action, "Action declined by user")
                continue

            self._before_action(action)
            self.events.emit(
                EventType.ACTION_STARTED,
                action_id=action.id,
                action_type=action.type.value,
                parameters=action.parameters,
            )

            result = self._execute_action(action)
            if result.success and self.config.settings.auto_screenshot and result.screenshot is None:
                result.screenshot = self._auto_capture()

            self._record(session_id, results, result)
            exec_context.previous_actions.append(action)
            self.events.emit(
                EventType.ACTION_COMPLETED,
                action_id=action.id,
                action_type=action.type.value,
                success=result.success,
                error=result.error,
            )
            self.control.stoppable_sleep(self.config.settings.action_delay)

        return False

    def _execute_action(self, action: Action) -> ActionResult:
        try:
            return self._dispatch(action)
        except OperatorError as e:
            logger.error(f"[AGENT] {action.type.value} rejected: {e}")
            return ActionResult.failed(action.id, str(e), code=e.code)

    def _confirm(self, action: Action) -> bool:
        if self.confirm_callback is None:
            logger.warning("[AGENT] confirm_actions is on but no confirmation callback is set")
            return False
        try:
            return bool(self.confirm_callback(action))
        except Exception as e:
            logger.error(f"[AGENT] Confirmation callback failed: {e}")
            return False

    def _auto_capture(self) -> Optional[Screenshot]:
        try:
            return self._capture_state()
        except OperatorError as e:
            logger.warning(f"[AGENT] Auto screenshot failed: {e}")
            return None

    def _skip(
        self,
        session_id: str,
        results: List[ActionResult],
        action: Action,
        error: str,
        **data: Any,
    ) -> None:
        result = ActionResult.failed(action.id, error, skipped=True, **data)
        self._record(session_id, results, result)
        self.events.emit(
            EventType.ACTION_COMPLETED,
            action_id=action.id,
            action_type=action.type.value,
            success=False,
            error=error,
            skipped=True,
        )

    def _record(self, session_id: str, results: List[ActionResult], result: ActionResult) -> None:
        results.append(result)
        self.session_manager.add_result(session_id, result)

    def _iteration_completed(self, results: List[ActionResult]) -> None:
        self.events.emit(
            EventType.ITERATION_COMPLETED, iteration=self.iteration, result_count=len(results)
        )

    # --- Variant hooks ---

    def _prepare_run(self, instruction: str, context: ExecutionContext) -> None:
        """Called once before the first iteration."""
        pass

    @abstractmethod
    def _capture_state(self) -> Screenshot:
        """Capture the surface the model should look at."""
        pass

    def _before_action(self, action: Action) -> None:
        """Called after validation, right before dispatch."""
        pass

    @abstractmethod
    def _dispatch(self, action: Action) -> ActionResult:
        """Perform one validated action."""
        pass

    def _environment(self) -> Dict[str, Any]:
        """Environment facts added to the context each iteration."""
        return {}
