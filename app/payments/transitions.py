"""
Conditional state transitions for FSM-managed models.

django-fsm validates transitions on an in-memory instance, but saving
that instance would overwrite whatever another request wrote in the
meantime. transition_if() combines both:

1. Run the django-fsm transition method on the instance. This validates
   the move against the transition graph and fills in side fields
   (timestamps, gateway ids, failure reason).
2. Write the changed fields with a single UPDATE keyed on the primary
   key *and the source state*.

If another request moved the row first, the UPDATE matches zero rows and
transition_if() returns False. The in-memory instance then no longer
reflects the database; callers re-fetch it (FSM fields are protected, so
refresh_from_db() is not available).

Usage:
    from payments.transitions import transition_if

    if not transition_if(payment, "release"):
        raise AlreadyProcessedError("Payment has already been processed")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django_fsm import TransitionNotAllowed

from payments.exceptions import InvalidStateTransitionError

if TYPE_CHECKING:
    from typing import Any

    from django.db import models


logger = logging.getLogger(__name__)


def transition_if(
    instance: models.Model,
    transition_name: str,
    *args: Any,
    state_field: str = "status",
    **kwargs: Any,
) -> bool:
    """
    Apply a django-fsm transition and persist it only if the row is still
    in the source state.

    Args:
        instance: Model instance loaded from the database
        transition_name: Name of the @transition method (hold, release, ...)
        *args, **kwargs: Passed to the transition method
        state_field: Name of the FSMField

    Returns:
        True if this call moved the row, False if the row had already left
        the source state

    Raises:
        InvalidStateTransitionError: The instance's current state does not
            allow this transition
    """
    model = type(instance)
    source = getattr(instance, state_field)
    before = {f.attname: getattr(instance, f.attname) for f in model._meta.concrete_fields}

    try:
        getattr(instance, transition_name)(*args, **kwargs)
    except TransitionNotAllowed as e:
        raise InvalidStateTransitionError(
            f"Cannot {transition_name} {model.__name__.lower()} from '{source}' state",
            details={
                "id": str(instance.pk),
                "current_state": source,
                "transition": transition_name,
            },
        ) from e

    changes = {
        name: getattr(instance, name)
        for name, old_value in before.items()
        if getattr(instance, name) != old_value
    }
    target = changes.pop(state_field)

    updated = model.objects.compare_and_set(
        instance.pk,
        field=state_field,
        expected=source,
        new=target,
        **changes,
    )

    logger.info(
        f"{model.__name__} {transition_name}: {source} -> {target}"
        + ("" if updated else " (no match)"),
        extra={
            "model": model.__name__,
            "id": str(instance.pk),
            "transition": transition_name,
            "source_state": source,
            "target_state": target,
            "applied": updated,
        },
    )
    return updated
