"""Copy template configuration into branch units."""

from __future__ import annotations

from pydantic import ValidationError

from .errors import SyncError
from .models import UnitConfig
from .units import BranchUnit


class ConfigPropagator:
    """Mirror the template's build behavior onto a branch unit.

    Only the named ``UnitConfig`` fields are copied. The unit keeps its name,
    build history and disabled intent, and always leaves the template role.
    """

    def apply(self, template: BranchUnit, unit: BranchUnit) -> None:
        source = template.config
        try:
            config = UnitConfig(
                description=source.description,
                display_name=source.display_name,
                parameters=dict(source.parameters),
                build_steps=list(source.build_steps),
                publishers=list(source.publishers),
                properties=dict(source.properties),
                assigned_node=source.assigned_node,
                quiet_period=source.quiet_period,
                concurrent_build=source.concurrent_build,
                scm=source.scm.model_copy(deep=True) if source.scm else None,
            )
        except ValidationError as exc:
            raise SyncError(
                f"Template configuration cannot be applied to '{unit.name}'",
                "Fix the template configuration and sync again.",
                {"branch": unit.name, "errors": exc.errors(include_context=False, include_input=False)},
            ) from exc
        unit.config = config
        unit.mark_template(False)
        unit.reload()
