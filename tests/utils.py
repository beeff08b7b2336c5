import threading
from pathlib import Path

from app.services.storage import ObjectStorage


class FakeStorage(ObjectStorage):
    """ObjectStorage over an in-memory dict instead of a bucket."""

    def __init__(self, fail_on: set[str] | None = None) -> None:
        super().__init__(client=None, bucket="test-bucket", public_base_url="https://cdn.test")
        self.objects: dict[str, bytes] = {}
        self.upload_counts: dict[str, int] = {}
        self.fail_on = fail_on or set()
        self._lock = threading.Lock()

    def upload_file(self, local_path: Path, key: str) -> None:
        if any(part in key for part in self.fail_on):
            raise OSError(f"simulated upload failure for {key}")
        data = Path(local_path).read_bytes()
        with self._lock:
            self.objects[key] = data
            self.upload_counts[key] = self.upload_counts.get(key, 0) + 1

    def keys(self) -> set[str]:
        with self._lock:
            return set(self.objects)


class FakePipe:
    def __init__(self, lines: list[str]) -> None:
        self._lines = iter(line if line.endswith("\n") else line + "\n" for line in lines)
        self.closed = False

    def __iter__(self):
        return self

    def __next__(self) -> str:
        if self.closed:
            raise ValueError("I/O operation on closed file")
        return next(self._lines)

    def close(self) -> None:
        self.closed = True


class FakeProcess:
    """Stands in for subprocess.Popen: scripted stdout/stderr lines and an exit code."""

    def __init__(self, stdout_lines: list[str], returncode: int = 0, stderr_lines: list[str] | None = None) -> None:
        self.stdout = FakePipe(stdout_lines)
        self.stderr = FakePipe(stderr_lines or [])
        self.returncode = returncode
        self.waited = False
        self.stdout_closed_at_wait = False

    def wait(self) -> int:
        self.waited = True
        self.stdout_closed_at_wait = self.stdout.closed
        return self.returncode


def make_manifest(modules: list[tuple[str, list[str]]], name: str = "Curso Python 3.0") -> dict:
    """
    modules: [("Module name", ["Lesson A", "Lesson B"]), ...]
    Lesson ids are "<module index>-<lesson index>".
    """
    return {
        "course": {
            "name": name,
            "modules": [
                {
                    "id": f"m{m_idx}",
                    "name": module_name,
                    "order": m_idx + 1,
                    "lessons": [
                        {"id": f"{m_idx}-{l_idx}", "title": title, "video": {"name": "video.mp4"}}
                        for l_idx, title in enumerate(lessons)
                    ],
                }
                for m_idx, (module_name, lessons) in enumerate(modules)
            ],
        }
    }
