# notifier

A small service that accepts outbound HTTP notifications from other systems,
stores them in SQLite and delivers them in the background. Failed deliveries
are retried with exponential backoff; tasks that cannot be delivered end up
in the `FAILED` state, where they can be inspected and put back in the queue
by hand.

## Installation

```
pip install .
```

For running the test suite:

```
pip install ".[test]"
pytest
```

## Running

```
notifier
```

Options:

- `--db-path PATH` – the SQLite database file (default `data.db`).
- `--address ADDR` – the HTTP listen address (default `:8080`). It takes the
  form `host:port`; an empty host means all interfaces, and an IPv6 host may
  be given in brackets, as in `[::1]:8080`.

The other settings are fixed at their defaults when the service is started
with the command. The service:

- scans for due tasks every 5 seconds and delivers up to 10 at a time
  (at most 100 tasks per scan),
- gives each outbound request 10 seconds to complete,
- moves tasks that have been in `DELIVERING` for more than 60 seconds back
  to `RETRYING`, due at once,
- uses a base retry interval of 10 seconds.

These live in `notifier.config.Config` and can be changed when the service is
built from code (see below).

Stop the service with Ctrl-C or SIGTERM. The scheduler stops, and requests
that fail because the HTTP client was closed during shutdown are not counted
as a retry.

## HTTP API

All routes live under `/api/v1`. Errors are answered as `{"error": "..."}`.

### Submit a notification

`POST /api/v1/notifications`

```json
{
  "target_url": "https://hooks.example.com/orders",
  "http_method": "POST",
  "headers": {"Authorization": "Bearer token"},
  "body": "{\"order\": 42}",
  "source_system": "orders",
  "trace_id": "trace-123",
  "max_retries": 5
}
```

`target_url` (an absolute URL) and `http_method` (`POST`, `PUT` or `PATCH`)
are required. `headers` must be an object of strings. `max_retries` defaults
to 3 when it is missing or not positive. The task is stored before the reply,
which is `202 Accepted` with `{"task_id": <id>}`. An invalid body gives `400`,
a storage failure `500`.

### List tasks

`GET /api/v1/notifications?status=FAILED&page=1&page_size=20`

`status` is optional. `page` falls back to 1 when missing or invalid;
`page_size` falls back to 20 when missing, invalid or outside 1–100. The reply
holds `total`, `page`, `page_size` and `tasks`, newest first.

### Get one task

`GET /api/v1/notifications/<id>` – `400` if the id is not an integer, `404`
if there is no such task.

### Retry a failed task

`POST /api/v1/notifications/<id>/retry` – resets a `FAILED` task to
`PENDING`, due at once, with its retry count and last error cleared. `404` if
the task does not exist or is not `FAILED`.

## Delivery rules

Every request carries `Content-Type: application/json`, then the task's own
headers (which may override it), and `X-Trace-ID` when a trace id was given.

- `2xx`: the task becomes `SUCCESS`.
- `4xx`: the task becomes `FAILED` at once; it is not retried.
- Any other status, and network errors: the task becomes `RETRYING` and is
  tried again after `2^n × base interval`, where `n` is the new retry count
  (20 s, 40 s, 80 s, … with the default 10 s base). When the new retry count
  reaches `max_retries`, the task becomes `FAILED` instead.

Before delivery each task is claimed by moving it from `PENDING`/`RETRYING`
to `DELIVERING`; a task that another worker has already claimed is skipped,
so several instances can share one database.

## Using it as a library

```python
import threading

from notifier.config import Config
from notifier.server import build_service

config = Config(db_path="tasks.db")
with build_service(config) as service:
    service.scheduler.dispatch_pending()   # one delivery pass
    stop = threading.Event()
    # service.scheduler.run(stop) ticks until stop is set
    # service.app is the Flask application
```

- `notifier.repository.SqliteTaskRepository` stores tasks; anything following
  the `notifier.repository.TaskStore` protocol can take its place.
- `notifier.dispatcher.Dispatcher.deliver(task)` delivers one task and returns
  the `TaskStatus` it was moved to, or `None` when it was skipped.
- `notifier.dispatcher.backoff_delay(retry_count, base_interval)` gives the
  retry wait.
- `notifier.api.create_app(repo)` builds the Flask application on top of any
  task store; `register_routes(app, handler)` adds the routes to an existing
  application.