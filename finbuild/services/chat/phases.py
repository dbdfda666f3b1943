"""Phase determination from project status."""

from finbuild.services.chat.models import Phase

# Status values written by the conversation engine.
STATUS_CREATED = "created"
STATUS_REQUIREMENTS_COMPLETED = "requirements_completed"
STATUS_BLUEPRINT_GENERATED = "blueprint_generated"
STATUS_BLUEPRINT_APPROVED = "blueprint_approved"
STATUS_COMPONENT_GENERATION = "component_generation"
STATUS_COMPLETED = "completed"


def determine_phase(status: str | None) -> Phase:
    """Map a project status to its phase.

    A pure function of *status*: there is no stored "current phase".
    Unknown statuses map to the requirements phase.
    """
    if not status or status == STATUS_CREATED:
        return Phase.REQUIREMENTS
    if status == STATUS_REQUIREMENTS_COMPLETED or "blueprint" in status:
        return Phase.BLUEPRINT
    if "component" in status:
        return Phase.COMPONENT
    if status == STATUS_COMPLETED:
        return Phase.SUPPORT
    return Phase.REQUIREMENTS
