"""offsync -- Offline request cache and background sync engine.

This package sits between a REST front-end and its network transport. It
keeps a persistent, versioned cache of responses, picks a caching strategy
for every outgoing request, queues writes that failed while offline, and
replays them when connectivity returns.

Typical workflow::

    offsync lifecycle install    # seed the static bucket for the current version
    offsync lifecycle activate   # drop stale buckets, take over clients
    offsync fetch GET /api/transactions
    offsync sync                 # replay queued mutations

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the entire package.
    config: XDG-aware configuration loading and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
    worker: Dispatcher mapping trigger types to the engine's handlers.
    client: JSON API client (bearer token, error mapping) over the worker;
        the programmatic entry point for front-end code.
"""

__version__ = "0.1.0"
