"""Guest cart merge performed when a shopper logs in."""

import logging
from typing import TYPE_CHECKING

from .exceptions import CartError
from .guest_store import GuestCartStore
from .models import MergeItemResult, MergeReport
from .storefront_client import StorefrontClient

if TYPE_CHECKING:
    from .cart_state import CartStateMachine

logger = logging.getLogger(__name__)


class MergeCoordinator:
    """
    Drains the guest cart into the server cart.

    The merge is best-effort and not transactional: each guest line becomes
    one add-item call, a failed line does not stop the others, and the
    outcome of every line is returned in a ``MergeReport``. The server adds
    quantities, so a product already in the server cart ends up with the sum.

    The guest store is cleared before any call is made, so a second merge,
    or one re-triggered after an interruption, finds nothing to add. Lines
    that fail to merge are not restored to the guest store.
    """

    def __init__(self, guest_store: GuestCartStore, client: StorefrontClient) -> None:
        self.guest_store = guest_store
        self.client = client

    def merge(self, cart: "CartStateMachine") -> MergeReport:
        """
        Merge the stored guest cart into ``cart``'s server cart.

        Args:
            cart: Cart state machine already switched to the authenticated identity

        Returns:
            Per-item merge outcome; ``skipped`` when the guest cart was empty
        """
        token = cart.identity.token
        if token is None:
            raise ValueError("Guest cart can only be merged into an authenticated cart")

        guest = self.guest_store.load()
        if not guest.items:
            logger.info("Guest cart is empty, nothing to merge")
            return MergeReport(skipped=True)

        self.guest_store.clear()
        logger.info(f"=== MERGE GUEST CART: {len(guest.items)} item(s) ===")

        results: list[MergeItemResult] = []
        for item in guest.items:
            try:
                self.client.add_item(token, item.product.id, item.quantity)
            except CartError as e:
                results.append(
                    MergeItemResult(
                        product_id=item.product.id,
                        quantity=item.quantity,
                        succeeded=False,
                        reason=e.message,
                    )
                )
            else:
                results.append(
                    MergeItemResult(product_id=item.product.id, quantity=item.quantity, succeeded=True)
                )

        report = MergeReport(results=results)
        if report.partial_failure:
            # Guest store is already cleared, these lines are lost
            logger.warning(
                f"Guest cart merge lost {len(report.failed)} item(s): "
                + ", ".join(f"{r.product_id} x{r.quantity} ({r.reason})" for r in report.failed)
            )
        else:
            logger.info(report.summary())

        cart.refresh()
        return report
