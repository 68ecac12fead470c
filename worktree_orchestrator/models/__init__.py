"""Core domain models for the worktree orchestrator.

This package defines the structured records every orchestrator operation
returns.

Key Models:
    - Project: Named repository under the checkout root
    - Checkout: Working directory bound to one branch
    - Task: Unit of work queued against a checkout
    - QueueKey: (project, branch) pair addressing a checkout and its queue
    - QueueStats: Task counts of one queue
    - BranchListing: Branches with and without a checkout
    - SyncRecord: Reconciliation result of one checkout
    - ResolutionResult: Outcome of a conflict resolution attempt

Example:
    >>> from worktree_orchestrator.models.domain import QueueKey
    >>> str(QueueKey("shop", "feat-cart"))
    'shop/feat-cart'
"""
