from __future__ import annotations

import logging
from typing import List, Sequence

from .launcher import LaunchError, ProcessLauncher
from .parser import AbsoluteTimeOfDay, TimeSpecification, validate_spec
from .storage import HandoffStore, PendingCommand

logger = logging.getLogger(__name__)


class HandoffError(RuntimeError):
    pass


class ProcessLaunchFailed(HandoffError):
    pass


def spec_to_args(spec: TimeSpecification, auto_start: bool = False) -> List[str]:
    if isinstance(spec, AbsoluteTimeOfDay):
        args = ["--time", spec.as_text()]
    else:
        args = ["--seconds", f"{spec.seconds:g}"]
    if auto_start:
        args.append("--start")
    return args


class LauncherHandoffClient:
    """Hands a timer request to the timer process.

    The request travels twice: as a pending record in the shared store and
    as startup arguments of the launched process. Either one is enough; the
    timer process makes sure only one of them is applied.
    """

    def __init__(
        self,
        store: HandoffStore,
        launcher: ProcessLauncher,
        target: Sequence[str],
        new_instance: bool = False,
    ):
        self.store = store
        self.launcher = launcher
        self.target = list(target)
        self.new_instance = new_instance

    def request_arm(self, spec: TimeSpecification, auto_start: bool = False) -> PendingCommand:
        # The literal spec is stored, not an instant: the timer process
        # resolves it against its own clock when it picks it up.
        validate_spec(spec)
        cmd = PendingCommand.for_spec(spec, auto_start)
        self.store.write_pending(cmd)

        args = spec_to_args(spec, auto_start)
        try:
            self.launcher.launch_or_activate(self.target, args, new_instance=self.new_instance)
        except LaunchError as exc:
            logger.error("Timer process launch failed, pending record kept for later pickup: %s", exc)
            raise ProcessLaunchFailed(str(exc)) from exc
        return cmd
