"""
Integration tests for the fading channel simulator.
"""

import json
import math

import numpy as np
import pytest

from fading.channel_simulator import (
    FadingChannelSimulator,
    StreamingSegmentController,
    apply_fading_channel,
    describe_profiles,
    main,
)
from fading.config import ChannelModel, FadingChannelConfig, ProfileKind
from fading.doppler import DopplerProcessGenerator, DrawSource, SegmentState
from fading.padding import pad_input
from fading.profiles import DynamicProfile, Path, StaticProfile, StaticTap

SAMPLE_RATE = 6.912e6


def random_signal(num_samples, seed=0):
    rng = np.random.default_rng(seed)
    return (rng.standard_normal(num_samples) + 1j * rng.standard_normal(num_samples)) / np.sqrt(2)


def make_simulator(model="TU-6", **kwargs):
    params = dict(sample_rate_hz=SAMPLE_RATE, carrier_frequency_hz=700e6, speed_kmh=120.0, seed=3)
    params.update(kwargs)
    spread = 300e-9 if ChannelModel.parse(model).requires_delay_spread else None
    return FadingChannelSimulator.from_model(model, delay_spread_s=spread, **params)


class TestReferenceChannels:
    """Test suite for channels with closed-form output."""

    def test_single_los_path_is_identity(self):
        """One zero-delay, zero-Doppler LOS path leaves the signal unchanged."""
        config = FadingChannelConfig(
            sample_rate_hz=SAMPLE_RATE,
            carrier_frequency_hz=700e6,
            speed_kmh=50.0,
            seed=1
        )
        profile = DynamicProfile(paths=[Path(0.0, 0.0, math.inf, 0.0, 0.0)])
        x = np.where(np.arange(1000) % 3 == 0, 1.0, -1.0)

        result = FadingChannelSimulator(config, profile).apply(x)

        assert len(result.signal) == 1000
        np.testing.assert_allclose(result.signal, x, atol=1e-12)

    def test_static_two_path_echo(self):
        """Static echo is applied cyclically over the first D samples."""
        echo = 10 ** (-6 / 20)
        profile = StaticProfile(taps=[
            StaticTap(0.0, 1.0, 0.0),
            StaticTap(5 / SAMPLE_RATE, echo, math.pi),
        ])
        x = random_signal(200)

        simulator = FadingChannelSimulator(FadingChannelConfig(sample_rate_hz=SAMPLE_RATE), profile)
        result = simulator.apply(x)

        assert simulator.max_delay == 5
        expected = x - echo * np.roll(x, 5)
        np.testing.assert_allclose(result.signal, expected, atol=1e-12)
        np.testing.assert_allclose(result.signal[5:], x[5:] - echo * x[:-5], atol=1e-12)

    def test_static_matches_dynamic_los(self):
        """Fixed taps and infinite-K zero-Doppler paths give the same channel."""
        amplitudes = np.sqrt([0.5, 0.3, 0.2])
        phases = [0.3, 1.7, -2.0]
        delays = [0.0, 3 / SAMPLE_RATE, 11 / SAMPLE_RATE]

        static = StaticProfile(taps=[
            StaticTap(d, a, th) for d, a, th in zip(delays, amplitudes, phases)
        ])
        dynamic = DynamicProfile(paths=[
            Path(d, 20 * np.log10(a), math.inf, 0.0, -th)
            for d, a, th in zip(delays, amplitudes, phases)
        ])
        config = FadingChannelConfig(sample_rate_hz=SAMPLE_RATE, segment_size=64)
        x = random_signal(500)

        out_static = FadingChannelSimulator(config, static).apply(x).signal
        out_dynamic = FadingChannelSimulator(config, dynamic).apply(x).signal

        np.testing.assert_allclose(out_dynamic, out_static, atol=1e-10)

    def test_gains_aligned_with_output(self):
        """Output is the sum of path gains times the cyclically delayed input."""
        profile = DynamicProfile(paths=[Path(0.0, 0.0), Path(7 / SAMPLE_RATE, -4.0)])
        config = FadingChannelConfig(sample_rate_hz=SAMPLE_RATE, speed_kmh=300.0, seed=9)
        x = random_signal(600)

        result = FadingChannelSimulator(config, profile).apply(x, return_path_gains=True)
        gains = result.path_gains

        assert gains.shape == (600, 2)
        expected = gains[:, 0] * x + gains[:, 1] * np.roll(x, 7)
        np.testing.assert_allclose(result.signal, expected, atol=1e-12)


class TestCatalogueRuns:
    """Test suite for runs over catalogued models."""

    @pytest.mark.parametrize("model", [m.value for m in ChannelModel])
    def test_output_length_and_report(self, model):
        """Every model returns one output sample per input sample."""
        simulator = make_simulator(model)
        x = random_signal(2000)

        result = simulator.apply(x)
        report = result.profile_report

        assert result.signal.shape == (2000,)
        assert np.all(np.isfinite(result.signal))
        assert report.model == model
        assert report.max_delay_samples == max(report.path_delay_samples)
        assert min(report.path_delay_samples) >= 0
        assert len(report.avg_path_gain_db) == report.num_paths

    def test_segment_size_does_not_change_output(self):
        """Output and gains are independent of the segment size."""
        x = random_signal(3000)
        runs = [
            make_simulator("Seoul-S3", segment_size=size).apply(x, return_path_gains=True)
            for size in (200000, 333, 64)
        ]

        for other in runs[1:]:
            np.testing.assert_allclose(other.signal, runs[0].signal, rtol=0, atol=1e-12)
            np.testing.assert_allclose(other.path_gains, runs[0].path_gains, rtol=0, atol=1e-12)
        assert runs[2].metrics.num_segments > runs[1].metrics.num_segments > 1

    def test_same_seed_reproduces(self):
        """Same seed gives the same realization."""
        x = random_signal(1500)
        a = make_simulator("TU-6", seed=42).apply(x).signal
        b = make_simulator("TU-6", seed=42).apply(x).signal

        assert np.array_equal(a, b)

    def test_different_seed_differs(self):
        """Different seeds give different realizations."""
        x = random_signal(1500)
        a = make_simulator("TU-6", seed=1).apply(x).signal
        b = make_simulator("TU-6", seed=2).apply(x).signal

        assert not np.allclose(a, b)

    def test_workers_do_not_change_output(self):
        """Threaded per-path generation gives the same output."""
        x = random_signal(1500)
        serial = make_simulator("TDL-C").apply(x).signal
        threaded = make_simulator("TDL-C", workers=3).apply(x).signal

        np.testing.assert_allclose(threaded, serial, rtol=0, atol=1e-12)

    def test_average_output_power(self):
        """Normalized profiles preserve average power over a fast-fading run."""
        x = np.ones(20000, dtype=np.complex128)
        powers = []
        for seed in range(12):
            simulator = make_simulator("TU-6", sample_rate_hz=1e5, speed_kmh=500.0, seed=seed)
            powers.append(np.mean(np.abs(simulator.apply(x).signal) ** 2))

        assert np.mean(powers) == pytest.approx(1.0, abs=0.25)

    def test_static_model_gains(self):
        """Static models report their fixed weights for every sample."""
        simulator = make_simulator("RL20")
        result = simulator.apply(random_signal(800), return_path_gains=True)

        assert result.profile_report.kind is ProfileKind.STATIC
        assert result.metrics.num_segments == 0
        assert result.path_gains.shape == (800, 20)
        np.testing.assert_allclose(result.path_gains[123], simulator.profile.weights())

    def test_path_gains_off_by_default(self):
        """Gains are only returned on request."""
        assert make_simulator("TU-6").apply(random_signal(500)).path_gains is None


class TestOutputTypes:
    """Test suite for output dtype handling."""

    @pytest.mark.parametrize("in_dtype,out_dtype", [
        (np.float32, np.complex64),
        (np.complex64, np.complex64),
        (np.float64, np.complex128),
        (np.complex128, np.complex128),
        (np.int16, np.complex128),
        (np.uint8, np.complex128),
    ])
    def test_dtype(self, in_dtype, out_dtype):
        """Output is complex with at least the input precision."""
        x = np.ones(400, dtype=in_dtype)
        assert make_simulator("TU-6").apply(x).signal.dtype == out_dtype

    def test_accepts_lists(self):
        """Array-likes are accepted."""
        result = make_simulator("RL20").apply([1.0] * 100)
        assert len(result.signal) == 100


class TestStreamingSegmentController:
    """Test suite for segment streaming and resumption."""

    def test_resume_with_new_controller(self):
        """Splitting a run across controllers matches a single run."""
        simulator = make_simulator("TU-6")
        padded = pad_input(random_signal(1000), simulator.max_delay)

        def new_controller():
            generator = DopplerProcessGenerator(
                simulator.profile,
                SAMPLE_RATE,
                simulator.max_doppler_hz,
                DrawSource(3)
            )
            return StreamingSegmentController(generator, simulator.delay_line, segment_size=100)

        full, _, final = new_controller().run(padded)
        first, _, state = new_controller().run(padded[:437])
        second, _, resumed = new_controller().run(padded, state)

        assert state.next_sample == 437
        assert final.next_sample == resumed.next_sample == len(padded)
        np.testing.assert_allclose(np.concatenate([first, second]), full, rtol=0, atol=1e-12)

    def test_segment_count(self):
        """Segments are counted as processed."""
        simulator = make_simulator("TU-6")
        controller = StreamingSegmentController(
            simulator.generator, simulator.delay_line, segment_size=250
        )
        controller.run(np.ones(1000, dtype=np.complex128))

        assert controller.num_segments(1000) == 4
        assert controller.segments_processed == 4

    def test_state_past_end(self):
        """Resuming past the signal end is rejected."""
        simulator = make_simulator("TU-6")
        controller = StreamingSegmentController(simulator.generator, simulator.delay_line)

        with pytest.raises(ValueError):
            controller.run(np.ones(10), SegmentState(11))

    def test_mismatched_delay_line(self):
        """Generator paths and delay line taps must agree."""
        tu6 = make_simulator("TU-6")
        s1 = make_simulator("Seoul-S2")

        with pytest.raises(ValueError):
            StreamingSegmentController(tu6.generator, s1.delay_line)


class TestErrors:
    """Test suite for rejected inputs."""

    def test_unknown_model(self):
        with pytest.raises(ValueError):
            FadingChannelSimulator.from_model("TU-12")

    def test_tdl_without_delay_spread(self):
        with pytest.raises(ValueError, match="delay spread"):
            FadingChannelSimulator.from_model("TDL-D", speed_kmh=10.0)

    def test_input_shorter_than_delay_span(self):
        simulator = make_simulator("TU-6")
        with pytest.raises(ValueError):
            simulator.apply(np.ones(simulator.max_delay - 1))

    def test_two_dimensional_input(self):
        with pytest.raises(ValueError):
            make_simulator("TU-6").apply(np.ones((100, 2)))


class TestConvenienceFunctions:
    """Test suite for module-level helpers."""

    def test_apply_fading_channel(self):
        """One-call interface matches the simulator."""
        x = random_signal(1000)
        result = apply_fading_channel(
            x, "TDL-A",
            sample_rate_hz=SAMPLE_RATE,
            speed_kmh=60.0,
            seed=5,
            delay_spread_s=100e-9,
            return_path_gains=True
        )

        assert result.signal.shape == (1000,)
        assert result.path_gains.shape == (1000, 23)
        assert result.config_used.channel_model is ChannelModel.TDL_A

    def test_describe_profiles(self):
        """Summary lists every model with unit total power."""
        summary = describe_profiles()

        assert set(summary) == {m.value for m in ChannelModel}
        for info in summary.values():
            assert info["total_power"] == pytest.approx(1.0)
        assert summary["Seoul-S2"]["los_paths"] == 2
        assert summary["India-Rural"]["los_paths"] == 4
        assert summary["RC20"]["kind"] == "static"

    def test_get_status(self):
        """Status reports the resolved channel."""
        status = make_simulator("Seoul-S1").get_status()

        assert status["model"] == "Seoul-S1"
        assert status["kind"] == "dynamic"
        assert status["num_paths"] == 6
        assert status["max_doppler_hz"] == pytest.approx(120.0 / (299792.458 * 3600) * 700e6)

    def test_static_report_uses_tabulated_gains(self):
        """Static gains are reported before power normalization."""
        report = make_simulator("RL20").profile_report

        assert report.avg_path_gain_db[0] == pytest.approx(20 * np.log10(0.057662))
        assert report.avg_path_gain_db[0] == pytest.approx(-24.78, abs=0.01)

        data = json.loads(json.dumps(make_simulator("RC20").profile_report.to_dict()))
        assert len(data["paths"]["avg_gain_db"]) == 21

    def test_report_to_dict(self):
        """Report serializes to JSON."""
        report = make_simulator("TDL-E").profile_report
        data = json.loads(json.dumps(report.to_dict()))

        assert data["kind"] == "dynamic"
        assert len(data["paths"]["delay_samples"]) == 15
        assert data["rms_delay_spread_us"] > 0


class TestCommandLine:
    """Test suite for the command-line interface."""

    def test_simulate(self, tmp_path):
        """Simulate writes the faded signal, gains and report."""
        in_file = tmp_path / "in.bin"
        out_file = tmp_path / "out.bin"
        gains_file = tmp_path / "gains.npy"
        report_file = tmp_path / "report.json"
        random_signal(3000).astype(np.complex64).tofile(in_file)

        code = main([
            "simulate", str(in_file),
            "-o", str(out_file),
            "--model", "TU-6",
            "--speed", "30",
            "--seed", "4",
            "--segment-size", "1000",
            "--gains-out", str(gains_file),
            "--report-out", str(report_file),
        ])

        assert code == 0
        assert len(np.fromfile(out_file, dtype=np.complex64)) == 3000
        assert np.load(gains_file).shape == (3000, 6)
        report = json.loads(report_file.read_text())
        assert report["profile"]["model"] == "TU-6"
        assert report["metrics"]["processing"]["num_segments"] >= 3

    def test_simulate_static_report(self, tmp_path):
        """A static channel run writes a JSON report from complex64 input."""
        in_file = tmp_path / "in.bin"
        report_file = tmp_path / "report.json"
        np.ones(800, dtype=np.complex64).tofile(in_file)

        code = main([
            "simulate", str(in_file),
            "-o", str(tmp_path / "out.bin"),
            "--model", "RL20",
            "--report-out", str(report_file),
        ])

        assert code == 0
        report = json.loads(report_file.read_text())
        assert report["profile"]["kind"] == "static"
        assert report["metrics"]["signal"]["input_power_db"] == pytest.approx(0.0, abs=1e-6)

    def test_simulate_invalid_channel(self, tmp_path):
        """Configuration errors give exit code 2."""
        in_file = tmp_path / "in.bin"
        random_signal(500).astype(np.complex64).tofile(in_file)

        code = main([
            "simulate", str(in_file),
            "-o", str(tmp_path / "out.bin"),
            "--model", "TDL-B",
        ])

        assert code == 2
        assert not (tmp_path / "out.bin").exists()

    def test_profiles_json(self, capsys):
        """Profiles command lists the catalogue as JSON."""
        assert main(["profiles", "--format", "json"]) == 0

        summary = json.loads(capsys.readouterr().out)
        assert len(summary) == 13
        assert summary["TDL-C"]["num_paths"] == 24

    def test_profiles_with_speed(self, capsys):
        """Speed and carrier are accepted for the listing."""
        assert main(["profiles", "--format", "json", "--speed", "100", "--carrier", "700e6"]) == 0

        summary = json.loads(capsys.readouterr().out)
        assert summary["Seoul-S2"]["los_paths"] == 2

    def test_profiles_text(self, capsys):
        """Profiles command prints a table."""
        assert main(["profiles"]) == 0
        assert "India-Urban" in capsys.readouterr().out

    def test_no_command(self):
        """Missing command prints help and fails."""
        assert main([]) == 1
