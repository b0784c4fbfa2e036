"""
QuerySet and Manager classes for conditional ("compare and set") updates.

Every state-changing write in the escrow flow is expressed as
"set field to NEW only if it is currently EXPECTED". The database applies
the filter and the update in one statement, so two concurrent writers
cannot both win: the loser sees zero matched rows.

Usage:
    from core.managers import ConditionalUpdateManager

    class Listing(BaseModel):
        objects = ConditionalUpdateManager()

    # Move to pending only if still active
    claimed = Listing.objects.compare_and_set(
        listing.pk,
        field="status",
        expected="active",
        new="pending",
        buyer=buyer,
    )
    if not claimed:
        ...  # someone else got there first
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import models
from django.utils import timezone

if TYPE_CHECKING:
    from typing import Any


class ConditionalUpdateQuerySet(models.QuerySet):
    """
    QuerySet with a compare-and-set primitive.

    Methods:
        compare_and_set(): Update one row if its field holds the expected value
    """

    def compare_and_set(
        self,
        pk: Any,
        *,
        field: str,
        expected: Any,
        new: Any,
        **changes: Any,
    ) -> bool:
        """
        Update the row with primary key ``pk`` only if ``field == expected``.

        QuerySet.update() bypasses auto_now, so ``updated_at`` is set
        explicitly when the model has one.

        Args:
            pk: Primary key of the row to update
            field: Name of the state field to compare
            expected: Value the field must currently hold
            new: Value to write into the field
            **changes: Additional columns written in the same statement

        Returns:
            True if exactly one row matched and was updated
        """
        values = {field: new, **changes}
        if "updated_at" not in values and any(
            f.name == "updated_at" for f in self.model._meta.concrete_fields
        ):
            values["updated_at"] = timezone.now()

        return self.filter(pk=pk, **{field: expected}).update(**values) == 1


class ConditionalUpdateManager(models.Manager.from_queryset(ConditionalUpdateQuerySet)):
    """Default manager exposing compare_and_set()."""
