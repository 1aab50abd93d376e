"""Decide whether one environment may be cloned onto another."""

from collections.abc import Callable
from enum import Enum

from siteclone.logging import logger
from siteclone.models import (
    EnvironmentDescriptor,
    FrozenEnvironmentError,
    IncompatibleFrameworkError,
)

Confirm = Callable[[str], bool]


class Verdict(str, Enum):
    """Outcome of the compatibility check."""

    PROCEED = "proceed"
    ABORT = "abort"


def check(
    source: EnvironmentDescriptor, destination: EnvironmentDescriptor, confirm: Confirm
) -> Verdict:
    """Check that source can be cloned onto destination.

    Framework and frozen checks are hard failures and run before the operator
    is ever prompted. A runtime version mismatch only needs confirmation.

    Args:
        source: Resolved source environment
        destination: Resolved destination environment
        confirm: Blocking yes/no prompt, called only on version mismatch

    Returns:
        Verdict.PROCEED, or Verdict.ABORT if the operator declined

    Raises:
        IncompatibleFrameworkError: If frameworks differ
        FrozenEnvironmentError: If either environment is frozen
    """
    if source.framework != destination.framework:
        raise IncompatibleFrameworkError(
            f"Cannot clone sites with different frameworks: {source.label} uses "
            f"'{source.framework}' and {destination.label} uses '{destination.framework}'."
        )

    frozen = [env.label for env in (source, destination) if env.frozen]
    if frozen:
        raise FrozenEnvironmentError(
            f"Cannot clone sites that are frozen: {', '.join(frozen)}. "
            "Unfreeze them on the dashboard first."
        )

    if source.runtime_version != destination.runtime_version:
        logger.warning(
            "The source site has a PHP version of {} and the destination site has a PHP version of {}",
            source.runtime_version,
            destination.runtime_version,
        )
        if not confirm("The sites do not have matching PHP versions. Would you like to proceed?"):
            logger.info("Clone cancelled")
            return Verdict.ABORT

    return Verdict.PROCEED
