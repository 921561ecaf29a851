"""Tests for unique id generation."""
import re
import threading

from codestorm.utils.ids import generate_file_id, generate_task_id, generate_unique_id

ID_PATTERN = re.compile(r"^task-\d{13}-\d+-\d{4}-[0-9a-z]{7}$")


class TestGenerateUniqueId:
    def test_format(self):
        assert ID_PATTERN.match(generate_task_id())

    def test_prefixes(self):
        assert generate_file_id().startswith("file-")
        assert generate_unique_id("design-proposal").startswith("design-proposal-")

    def test_no_prefix(self):
        assert re.match(r"^\d{13}-", generate_unique_id())

    def test_unique_in_tight_loop(self):
        ids = [generate_unique_id("x") for _ in range(5000)]
        assert len(set(ids)) == len(ids)

    def test_unique_across_threads(self):
        results = []
        lock = threading.Lock()

        def worker():
            local = [generate_unique_id("t") for _ in range(500)]
            with lock:
                results.extend(local)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(results) == 4000
        assert len(set(results)) == 4000
