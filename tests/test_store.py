import json
import tempfile
import threading
import time
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest import mock

from kbforce.config import DATA_DIR_ENV, UserProfile
from kbforce.repdetect.threshold import RepSummary
from kbforce.session.aggregator import SessionSummary
from kbforce.store import sessions as store_mod


def _summary(days_ago: int = 0, reps: int = 2, exercise: str = "swing") -> SessionSummary:
    rep_list = tuple(
        RepSummary(
            start_time=i * 2.0,
            end_time=i * 2.0 + 1.2,
            peak_force_n=400.0 + i,
            peak_force_norm=0.6,
            impulse_ns=150.0,
        )
        for i in range(reps)
    )
    return SessionSummary(
        exercise_type=exercise,
        kettlebell_mass_kg=24.0,
        body_mass_kg=70.0,
        duration_sec=30.0,
        reps=rep_list,
        session_peak_force_n=401.0,
        session_peak_force_norm=0.6,
        session_impulse_ns=150.0 * reps,
        date=datetime(2025, 11, 23, 12, 0, tzinfo=timezone.utc) - timedelta(days=days_ago),
    )


class SessionSerializationTests(unittest.TestCase):
    def test_obj_roundtrip_preserves_every_field(self) -> None:
        summary = _summary()
        obj = store_mod.session_to_obj(summary)
        json.dumps(obj)
        self.assertEqual(store_mod.session_from_obj(obj), summary)

    def test_malformed_record_raises_store_error(self) -> None:
        obj = store_mod.session_to_obj(_summary())
        del obj["session_peak_force_n"]
        with self.assertRaises(store_mod.StoreError):
            store_mod.session_from_obj(obj)


class SessionStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.store = store_mod.SessionStore(self.root)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_empty_store_lists_nothing(self) -> None:
        self.assertEqual(self.store.list(), [])

    def test_list_is_newest_first(self) -> None:
        old, new, mid = _summary(days_ago=5), _summary(days_ago=0), _summary(days_ago=2)
        for s in (old, new, mid):
            self.store.save(s)
        self.assertEqual([s.id for s in self.store.list()], [new.id, mid.id, old.id])

    def test_get_and_delete(self) -> None:
        summary = _summary()
        self.store.save(summary)
        self.assertEqual(self.store.get(summary.id), summary)

        self.assertTrue(self.store.delete(summary.id))
        self.assertFalse(self.store.delete(summary.id))
        with self.assertRaises(store_mod.SessionNotFound):
            self.store.get(summary.id)

    def test_saving_same_id_replaces_record(self) -> None:
        summary = _summary()
        self.store.save(summary)
        self.store.save(summary)
        self.assertEqual(len(self.store.list()), 1)

    def test_concurrent_saves_are_all_kept(self) -> None:
        real_load = self.store._load_all

        def slow_load():
            time.sleep(0.02)
            return real_load()

        summaries = [_summary(days_ago=i) for i in range(5)]
        with mock.patch.object(self.store, "_load_all", side_effect=slow_load):
            threads = [threading.Thread(target=self.store.save, args=(s,)) for s in summaries]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

        self.assertEqual([s.id for s in self.store.list()], [s.id for s in summaries])

    def test_corrupt_file_raises_store_error(self) -> None:
        self.store.sessions_path.write_text("{not json")
        with self.assertRaises(store_mod.StoreError):
            self.store.list()

    def test_profile_defaults_and_persists(self) -> None:
        self.assertFalse(self.store.profile_path.exists())
        self.assertEqual(self.store.load_profile(), UserProfile())
        self.assertTrue(self.store.profile_path.exists())

        self.store.save_profile(UserProfile(body_mass_kg=82.5))
        self.assertEqual(store_mod.SessionStore(self.root).load_profile().body_mass_kg, 82.5)

    def test_no_temp_files_left_behind(self) -> None:
        self.store.save(_summary())
        self.assertEqual(sorted(p.name for p in self.root.iterdir()), [store_mod.SESSIONS_FILE])

    def test_default_root_honours_environment(self) -> None:
        with mock.patch.dict("os.environ", {DATA_DIR_ENV: str(self.root / "env")}):
            self.assertEqual(store_mod.SessionStore().root, self.root / "env")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
