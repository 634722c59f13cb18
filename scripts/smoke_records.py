# быстрый смоук на временной SQLite: схема через Alembic, затем create/update/history
import os
import tempfile

os.environ.setdefault("RECORDSTORE_DB_URL", f"sqlite:///{tempfile.mkdtemp()}/smoke.db")

import records_app  # noqa: E402
from recordstore import DELETE  # noqa: E402

svc = records_app.bootstrap(log_file=None)
svc.create(1, {"name": "John Doe", "email": "john@example.com"})
svc.apply_update(1, {"email": "johndoe@example.com"})
svc.apply_update(1, {"name": DELETE})

print(svc.list_versions(1))
print(svc.get_latest(1).to_dict())
