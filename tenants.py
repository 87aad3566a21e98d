"""
Seller provisioning.

Creating a seller touches three documents: the login identity, the seller and
the user link. MongoDB only gives per-document atomicity here, so the steps run
as a saga: when a step fails, the steps already done are undone in reverse.
"""
import logging
import random
import string
from typing import Callable, List

import auth
import repository
from schemas import AppUser, Seller

logger = logging.getLogger("storefront.tenants")

SELLER_ID_CHARS = string.ascii_uppercase + string.digits
SELLER_ID_LENGTH = 7


class ProvisioningError(RuntimeError):
    pass


def generate_seller_id() -> str:
    # not checked against existing sellers
    return "".join(random.choice(SELLER_ID_CHARS) for _ in range(SELLER_ID_LENGTH))


def provision_seller(seller_id: str, seller: Seller, email: str, password: str) -> dict:
    undo: List[Callable[[], object]] = []
    try:
        uid = auth.create_identity(email, password)
        undo.append(lambda: auth.delete_identity(uid))

        repository.add_seller(seller_id, seller)
        undo.append(lambda: repository.delete_seller(seller_id))

        repository.create_app_user(uid, AppUser(email=email.strip().lower(), role="seller_admin", seller_id=seller_id))
    except auth.IdentityExists:
        raise
    except Exception as e:
        logger.exception("Provisioning of seller %s failed, rolling back %d step(s)", seller_id, len(undo))
        for step in reversed(undo):
            try:
                step()
            except Exception:
                logger.exception("Rollback step failed for seller %s", seller_id)
        raise ProvisioningError(f"Could not create seller {seller_id}") from e

    logger.info("Seller %s provisioned for %s", seller_id, email)
    return {"id": seller_id, "uid": uid}
