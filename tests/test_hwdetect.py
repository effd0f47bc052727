"""Tests for GPU detection."""
import pytest

from pveforge.core.errors import AmbiguousDevice, MissingDevice
from pveforge.discovery.hwdetect import MOCK_GPU, GpuDetector


def _detector(**kwargs):
    return GpuDetector(run_cmd=lambda cmd: "", **kwargs)


class TestEnumerate:
    """Test GPU enumeration."""

    def test_no_dri_directory(self):
        """Test a host without /dev/dri."""
        assert _detector().enumerate() == []

    def test_no_dri_directory_in_mock_mode(self):
        """Test mock mode assumes one Intel card."""
        assert _detector(mock=True).enumerate() == [MOCK_GPU]

    def test_pairs_render_node_through_sysfs(self, make_gpu):
        """Test render nodes are paired through sysfs."""
        card, render = make_gpu(index=0, render=128)

        devices = _detector().enumerate()

        assert len(devices) == 1
        assert devices[0].card == card
        assert devices[0].render == render
        assert devices[0].vendor == "intel"
        assert devices[0].name == "card0"

    def test_sorted_by_card(self, make_gpu):
        """Test cards come back sorted."""
        make_gpu(index=1, render=129, vendor="0x1002")
        make_gpu(index=0, render=128)

        devices = _detector().enumerate()

        assert [d.name for d in devices] == ["card0", "card1"]
        assert devices[1].vendor == "amd"
        assert devices[1].render.endswith("renderD129")

    def test_single_render_node_without_sysfs(self, host_config, tmp_path):
        """Test the only render node is used without sysfs."""
        dri = tmp_path / "dri"
        dri.mkdir()
        (dri / "card0").touch()
        (dri / "renderD128").touch()

        devices = _detector().enumerate()

        assert devices[0].render == str(dri / "renderD128")
        assert devices[0].vendor == "unknown"

    def test_ignores_other_nodes(self, make_gpu, tmp_path):
        """Test unrelated device nodes are ignored."""
        make_gpu()
        (tmp_path / "dri" / "by-path").mkdir()
        (tmp_path / "dri" / "card0-extra").touch()

        assert [d.name for d in _detector().enumerate()] == ["card0"]


class TestSelect:
    """Test GPU selection."""

    def test_single_candidate_is_default(self, make_gpu):
        """Test a single card is selected by default."""
        make_gpu()
        detector = _detector()
        assert detector.select(detector.enumerate()).name == "card0"

    def test_none_found(self):
        """Test selecting with no cards."""
        detector = _detector()
        with pytest.raises(MissingDevice, match="No GPU card node found"):
            detector.select(detector.enumerate())

    def test_several_without_choice_is_ambiguous(self, make_gpu):
        """Test several cards without a choice."""
        make_gpu(index=0, render=128)
        make_gpu(index=1, render=129)
        detector = _detector()

        with pytest.raises(AmbiguousDevice) as exc:
            detector.select(detector.enumerate())

        assert len(exc.value.candidates) == 2
        assert "--gpu-card" in str(exc.value)

    @pytest.mark.parametrize("choice", ["card1", "1"])
    def test_explicit_choice(self, make_gpu, choice):
        """Test selecting a card by name or index."""
        make_gpu(index=0, render=128)
        make_gpu(index=1, render=129)
        detector = _detector()

        assert detector.select(detector.enumerate(), choice).name == "card1"

    def test_explicit_choice_by_path(self, make_gpu):
        """Test selecting a card by path."""
        make_gpu(index=0, render=128)
        card, _ = make_gpu(index=1, render=129)
        detector = _detector()

        assert detector.select(detector.enumerate(), card).card == card

    def test_explicit_choice_not_found(self, make_gpu):
        """Test selecting a card that is not there."""
        make_gpu()
        detector = _detector()
        with pytest.raises(MissingDevice, match="card7"):
            detector.select(detector.enumerate(), "card7")
