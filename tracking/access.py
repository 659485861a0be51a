"""
Who may do what with a shipment's tracking.
"""

from domain.models import Actor, Role, Shipment


def can_toggle_tracking(shipment: Shipment, actor: Actor) -> bool:
    """Admins, or the driver assigned to the shipment."""
    return actor.is_admin or actor.is_driver(shipment.assigned_driver_id)


def can_submit_location(shipment: Shipment, actor: Actor) -> bool:
    """Only the assigned driver. Admins cannot report on a driver's behalf."""
    return actor.is_driver(shipment.assigned_driver_id)


def can_view_tracking(shipment: Shipment, actor: Actor) -> bool:
    """Admins, the assigned driver, or the shipper that owns the shipment."""
    if can_toggle_tracking(shipment, actor):
        return True
    return (
        actor.role == Role.SHIPPER
        and shipment.shipper_id is not None
        and actor.user_id == shipment.shipper_id
    )
