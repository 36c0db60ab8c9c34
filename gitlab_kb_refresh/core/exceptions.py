"""Errors raised by the refresh pipeline and its persistence layer."""


class RefreshError(Exception):
    """Base class for knowledge-base refresh failures."""

    pass


class ConnectionNotConfiguredError(RefreshError):
    """Raised when a tenant has no GitLab connection configured."""

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        super().__init__(f"GitLab connection not configured for tenant {tenant_id}")


class RefreshAlreadyRunningError(RefreshError):
    """Raised when a refresh is triggered while another one holds the tenant lock."""

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        super().__init__(f"A knowledge base refresh is already running for tenant {tenant_id}")


class RefreshRunNotFoundError(RefreshError):
    """Raised when a refresh run id does not exist."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Refresh run not found: {run_id}")


class RefreshRunStateError(RefreshError):
    """Raised on an illegal refresh run transition (e.g. re-opening a terminal run)."""

    pass


class RefreshLockLostError(RefreshError):
    """Raised when a running refresh finds its tenant lock expired or taken over."""

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        super().__init__(f"Refresh lock for tenant {tenant_id} was lost")
