import io
import tempfile
import unittest
from pathlib import Path

from kbforce.config import AccelerationSample
from kbforce.io import samples as sample_io
from kbforce.session.aggregator import SessionAggregator


class CsvSampleTests(unittest.TestCase):
    def test_parses_rows_with_header_and_blank_lines(self) -> None:
        fh = io.StringIO("x,y,z,epoch_ms\n0.0,0.0,1.0,1000\n\n0.5,-0.25,2.0,1010\n")
        parsed = list(sample_io.iter_samples_csv(fh))
        self.assertEqual(
            parsed,
            [
                AccelerationSample(x=0.0, y=0.0, z=1.0, epoch_ms=1000),
                AccelerationSample(x=0.5, y=-0.25, z=2.0, epoch_ms=1010),
            ],
        )

    def test_header_is_optional(self) -> None:
        parsed = list(sample_io.iter_samples_csv(io.StringIO("0,0,1,5\n")))
        self.assertEqual(parsed, [AccelerationSample(x=0.0, y=0.0, z=1.0, epoch_ms=5)])

    def test_bad_row_reports_line_number(self) -> None:
        fh = io.StringIO("x,y,z,epoch_ms\n0,0,1,0\n0,zero,1,10\n")
        with self.assertRaises(sample_io.SampleFormatError) as ctx:
            list(sample_io.iter_samples_csv(fh))
        self.assertIn("line 3", str(ctx.exception))

    def test_overflowing_timestamp_is_a_format_error(self) -> None:
        for stamp in ("inf", "-inf", "1e400"):
            with self.assertRaises(sample_io.SampleFormatError) as ctx:
                list(sample_io.iter_samples_csv(io.StringIO(f"0,0,1,0\n0,0,1,{stamp}\n")))
            self.assertIn("line 2", str(ctx.exception))

    def test_wrong_column_count(self) -> None:
        with self.assertRaises(sample_io.SampleFormatError):
            list(sample_io.iter_samples_csv(io.StringIO("0,0,1\n")))

    def test_write_then_load_file(self) -> None:
        original = [AccelerationSample(x=0.1, y=0.2, z=1.5, epoch_ms=i * 10) for i in range(5)]
        with tempfile.TemporaryDirectory() as tmp:
            path = sample_io.write_samples_csv(Path(tmp) / "nested" / "rec.csv", original)
            self.assertEqual(sample_io.load_samples_csv(path), original)


class SimulatorTests(unittest.TestCase):
    def test_simulated_timestamps_are_regular(self) -> None:
        generated = list(sample_io.simulate_samples(5000, 1.0, rate_hz=100.0))
        self.assertEqual(len(generated), 100)
        self.assertEqual(generated[0].epoch_ms, 5000)
        self.assertEqual(generated[-1].epoch_ms, 5990)
        self.assertTrue(all(b.epoch_ms - a.epoch_ms == 10 for a, b in zip(generated, generated[1:])))

    def test_simulated_signal_produces_reps(self) -> None:
        # The simulated magnitude never drops below ~1.54 g, so the bell to body
        # mass ratio has to be small enough for the exit threshold to be reached.
        agg = SessionAggregator(20.0, 80.0, 0)
        count = sample_io.replay(sample_io.simulate_samples(0, 5.0), agg)
        self.assertEqual(count, 500)
        self.assertGreaterEqual(len(agg.reps), 1)
        self.assertGreater(agg.peak_force_norm, 0.4)

    def test_replay_respects_max_samples(self) -> None:
        agg = SessionAggregator(24.0, 70.0, 0)
        count = sample_io.replay(sample_io.simulate_samples(0, 5.0), agg, max_samples=7)
        self.assertEqual(count, 7)
        self.assertEqual(agg.last_epoch_ms, 60)

    def test_replay_calls_hook_after_each_sample(self) -> None:
        agg = SessionAggregator(24.0, 70.0, 0)
        seen = []
        sample_io.replay(sample_io.simulate_samples(0, 0.05), agg, on_ingest=lambda: seen.append(agg.last_epoch_ms))
        self.assertEqual(seen, [0, 10, 20, 30, 40])


class SamplesToArrayTests(unittest.TestCase):
    def test_stacks_axes(self) -> None:
        arr = sample_io.samples_to_array(
            [AccelerationSample(x=1.0, y=2.0, z=3.0, epoch_ms=0), AccelerationSample(x=4.0, y=5.0, z=6.0, epoch_ms=1)]
        )
        self.assertEqual(arr.shape, (2, 3))
        self.assertEqual(arr[1].tolist(), [4.0, 5.0, 6.0])

    def test_empty_input_gives_empty_array(self) -> None:
        self.assertEqual(sample_io.samples_to_array([]).shape, (0, 3))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
