# provision.py
# Make sure the restricted kiosk account exists before the policy references it

from loguru import logger

from .errors import AccountPrivilegeError
from .host import ADMINISTRATORS_GROUP, USERS_GROUP


class AccountProvisioner:
    def __init__(self, host):
        self.host = host

    def ensure(self, name, password="", full_name="", description=""):
        """Create the account when missing. Returns (account, created)."""
        account = self.host.get_account(name)
        created = False
        if account is None:
            logger.info(f"[account] Creating local account '{name}'")
            self.host.create_account(name, password, full_name, description)
            created = True
        else:
            logger.warning(f"[account] Account '{name}' already exists, reusing it")
            if account.is_admin:
                raise AccountPrivilegeError(
                    f"Account '{name}' is a member of {ADMINISTRATORS_GROUP} and cannot be used as a kiosk account"
                )

        account = self.host.get_account(name)
        if not any(g.lower() == USERS_GROUP.lower() for g in account.groups):
            self.host.add_to_group(name, USERS_GROUP)
            logger.info(f"[account] Added '{name}' to {USERS_GROUP}")
        if created:
            logger.success(f"[account] Account '{name}' created")
        return self.host.get_account(name), created
