import sys
from pathlib import Path

# Ensure project root on sys.path so `privacydash` and `app` import without installation.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from privacydash import errors  # noqa: E402
from privacydash.slots import MemorySlotStore  # noqa: E402


class FlakySlotStore(MemorySlotStore):
    """In-memory slots that can be told to fail reads or writes, like a disabled or full medium."""

    def __init__(self, initial=None):
        super().__init__(initial)
        self.fail_reads = False
        self.fail_writes = False

    def get(self, label):
        if self.fail_reads:
            raise errors.StorageUnavailable(f"read of {label}", "storage disabled")
        return super().get(label)

    def put(self, label, value):
        if self.fail_writes:
            raise errors.StorageUnavailable(f"write of {label}", "quota exceeded")
        super().put(label, value)

    def delete(self, label):
        if self.fail_writes:
            raise errors.StorageUnavailable(f"delete of {label}", "storage disabled")
        super().delete(label)
