"""Command dispatcher with post-command state verification.

Each command runs through
Pending -> Authorized -> Dispatched -> AwaitingVerification -> Verified
(or VerificationFailed), with Denied, Failed and TimedOut as early exits.
The caller waits at most `deadline` seconds; vendor calls still in
flight at that point are left to finish in the background.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Protocol

from pydantic import BaseModel

from device_gateway.core.errors import (
    CommandFailed,
    CommandTimeout,
    DeviceGatewayError,
    DeviceOffline,
    PermissionDenied,
    SecurityPolicyViolation,
    StateVerificationFailed,
)
from device_gateway.core.interfaces.adapter import VendorAdapter
from device_gateway.core.models.access import DeviceOperation, UserContext
from device_gateway.core.models.command import (
    CommandExecution,
    DeviceCommand,
    ExecutionState,
    LockCommand,
    UnlockCommand,
)
from device_gateway.core.models.device import AccessRecord, UnifiedDevice
from device_gateway.security.redaction import redact
from device_gateway.services.audit import AuditCategory, AuditLogger, AuditOutcome
from device_gateway.services.authorization import AuthorizationService, operation_for
from device_gateway.services.command_effects import apply_command, verify_state
from device_gateway.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class DeviceStateStore(Protocol):
    """Owner of the local device snapshots the dispatcher reads and updates."""

    async def lookup(self, device_id: str) -> UnifiedDevice: ...

    async def commit(
        self, device: UnifiedDevice, publish: bool, force: bool = False
    ) -> None: ...

    async def record_access(self, device_id: str, record: AccessRecord) -> None: ...


class CommandResult(BaseModel):
    """Verified device state together with the execution trace."""

    execution: CommandExecution
    device: UnifiedDevice


class CommandDispatcher:
    """Routes commands to adapters and verifies their effect.

    Attributes:
        settle_delay: Seconds to wait before re-fetching device state
        deadline: Seconds a caller waits before receiving CommandTimeout
    """

    def __init__(
        self,
        adapters: Mapping[str, VendorAdapter],
        store: DeviceStateStore,
        authorization: AuthorizationService,
        rate_limiter: RateLimiter,
        audit: AuditLogger,
        settle_delay: float = 2.0,
        deadline: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._adapters = adapters
        self._store = store
        self._authorization = authorization
        self._rate_limiter = rate_limiter
        self._audit = audit
        self.settle_delay = settle_delay
        self.deadline = deadline
        self._sleep = sleep
        self._background: set[asyncio.Task] = set()

    async def execute(
        self, device_id: str, command: DeviceCommand, user: UserContext
    ) -> CommandResult:
        """Execute a command and return the verified device state.

        Args:
            device_id: Target device
            command: Command to execute
            user: Acting user with resolved roles

        Returns:
            CommandResult with the vendor-confirmed device

        Raises:
            PermissionDenied: If authorization fails
            SecurityPolicyViolation: If a device policy blocks the command
            ProofOfPresenceFailed: If unlock confirmation fails
            StateVerificationFailed: If the device did not reach the expected state
            CommandTimeout: If the deadline elapses first
            DeviceGatewayError: Any adapter error
        """
        execution = CommandExecution(
            device_id=device_id, command=command, actor_id=user.user_id
        )
        start = time.perf_counter()
        task = asyncio.ensure_future(self._run(execution, user))
        done, _ = await asyncio.wait({task}, timeout=self.deadline)
        if task in done:
            return task.result()

        self._background.add(task)
        task.add_done_callback(self._finish_background)
        error = CommandTimeout(
            f"Command {command.type} on {device_id} exceeded {self.deadline:.0f}s deadline"
        )
        self._finish(execution, ExecutionState.TIMED_OUT, error)
        await self._record_lock_access(execution, success=False, reason=error.user_message)
        self._audit_outcome(execution, error, time.perf_counter() - start)
        raise error

    def _finish_background(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Command finished after deadline with error: {error}")
        else:
            logger.info("Command finished after deadline")

    async def _run(self, execution: CommandExecution, user: UserContext) -> CommandResult:
        start = time.perf_counter()
        try:
            device = await self._store.lookup(execution.device_id)
            result = await self._pipeline(execution, user, device)
        except Exception as e:
            late = execution.state == ExecutionState.TIMED_OUT
            state = (
                ExecutionState.DENIED
                if isinstance(e, (PermissionDenied, SecurityPolicyViolation))
                else ExecutionState.FAILED
            )
            self._finish(execution, state, e)
            reason = e.user_message if isinstance(e, DeviceGatewayError) else redact(str(e))
            await self._record_lock_access(execution, success=False, reason=reason)
            if not late:
                self._audit_outcome(execution, e, time.perf_counter() - start)
            raise

        await self._record_lock_access(execution, success=True)
        if execution.state != ExecutionState.TIMED_OUT:
            self._audit_outcome(execution, None, time.perf_counter() - start)
        return result

    async def _pipeline(
        self, execution: CommandExecution, user: UserContext, device: UnifiedDevice
    ) -> CommandResult:
        command = execution.command
        if not device.is_online:
            raise DeviceOffline(device.id, device.vendor)

        operation = operation_for(command)
        await self._authorization.authorize(user, device, operation)
        if isinstance(command, UnlockCommand):
            await self._authorization.confirm_presence(user, device, operation)
        self._advance(execution, ExecutionState.AUTHORIZED)

        expected = apply_command(device, command)
        adapter = self._adapters.get(device.vendor)
        if adapter is None:
            raise CommandFailed(f"No adapter for vendor '{device.vendor}'", device.vendor)

        async with self._rate_limiter.gate(device.id, vendor=device.vendor):
            self._advance(execution, ExecutionState.DISPATCHED)
            logger.info(f"Dispatching {command.type} to {device.vendor}/{device.id}")
            with self._audit.timed(f"{device.vendor}.{command.type}"):
                await adapter.execute_command(device.id, command)

        await self._store.commit(expected, publish=False)
        self._advance(execution, ExecutionState.AWAITING_VERIFICATION)

        await self._sleep(self.settle_delay)
        try:
            await self._rate_limiter.acquire(device.id)
            actual = await adapter.get_device_state(device.id)
        except DeviceGatewayError as e:
            await self._store.commit(device, publish=False)
            self._finish(execution, ExecutionState.VERIFICATION_FAILED, e)
            raise StateVerificationFailed(
                f"could not re-fetch state: {e.user_message}", device.vendor
            ) from e

        await self._store.commit(actual, publish=True, force=True)
        mismatch = verify_state(expected, actual, command)
        if mismatch is not None:
            error = StateVerificationFailed(mismatch, device.vendor)
            self._finish(execution, ExecutionState.VERIFICATION_FAILED, error)
            logger.warning(f"Verification failed for {device.id}: {mismatch}")
            raise error

        self._finish(execution, ExecutionState.VERIFIED)
        return CommandResult(execution=execution, device=actual)

    def _advance(self, execution: CommandExecution, state: ExecutionState) -> None:
        if not execution.is_finished:
            execution.advance(state)

    def _finish(
        self,
        execution: CommandExecution,
        state: ExecutionState,
        error: BaseException | None = None,
    ) -> None:
        if execution.is_finished:
            return
        execution.advance(state)
        if error is not None:
            execution.error = (
                error.user_message
                if isinstance(error, DeviceGatewayError)
                else redact(str(error))
            )

    async def _record_lock_access(
        self, execution: CommandExecution, success: bool, reason: str | None = None
    ) -> None:
        command = execution.command
        if execution.access_recorded or not isinstance(
            command, (LockCommand, UnlockCommand)
        ):
            return
        execution.access_recorded = True
        operation = (
            DeviceOperation.LOCK
            if isinstance(command, LockCommand)
            else DeviceOperation.UNLOCK
        )
        record = AccessRecord(
            operation=operation,
            actor_id=execution.actor_id,
            success=success,
            failure_reason=None if success else reason,
        )
        try:
            await self._store.record_access(execution.device_id, record)
        except DeviceGatewayError as e:
            logger.warning(f"Could not record access for {execution.device_id}: {e}")

    def _audit_outcome(
        self,
        execution: CommandExecution,
        error: BaseException | None,
        latency: float,
    ) -> None:
        command = execution.command
        category = (
            AuditCategory.SECURITY
            if isinstance(command, UnlockCommand)
            else AuditCategory.DEVICE_CONTROL
        )
        metadata = {
            "device_id": execution.device_id,
            "execution_id": execution.execution_id,
            "user_id": execution.actor_id,
            "state": execution.state,
            "latency": round(latency, 3),
        }
        if error is not None:
            metadata["error"] = error
        outcome = AuditOutcome.SUCCESS if error is None else AuditOutcome.FAILED
        self._audit.record(category, command.type, outcome, **metadata)
        self._audit.observe_latency(f"command.{command.type}", latency)
