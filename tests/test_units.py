"""
Tests for the unit helpers: frame quantisation, volume mapping and
aspect-fit geometry.
"""

import pytest

from reelgraph.utils.gain import MAX_DB, MIN_DB, db_to_volume, volume_to_db, volume_to_linear
from reelgraph.utils.geometry import AspectFit, Size, calculate_fit, make_even
from reelgraph.utils.timecode import ceil_frames, floor_frames, quantize_to_frame, seconds_to_ms


class TestVolumeMapping:
    """Volume 0-100 with 50 as unity gain."""

    @pytest.mark.parametrize("volume", [0, 1, 25, 50, 50.1, 75, 99, 100])
    def test_round_trip(self, volume):
        assert db_to_volume(volume_to_db(volume)) == pytest.approx(volume, abs=0.01)

    def test_anchor_points(self):
        assert volume_to_db(0) == MIN_DB
        assert volume_to_db(50) == 0
        assert volume_to_db(100) == MAX_DB
        assert volume_to_db(25) == pytest.approx(-30)
        assert volume_to_db(75) == pytest.approx(6)

    def test_out_of_range_is_clamped(self):
        assert volume_to_db(-5) == MIN_DB
        assert volume_to_db(150) == MAX_DB
        assert db_to_volume(-90) == 0
        assert db_to_volume(40) == 100

    def test_linear_gain(self):
        assert volume_to_linear(50) == pytest.approx(1.0)
        assert volume_to_linear(None) == 1.0
        assert volume_to_linear(100) == pytest.approx(10 ** (12 / 20))


class TestTimecode:
    def test_quantize_to_nearest_frame(self):
        assert quantize_to_frame(1.01, 30) == pytest.approx(1.0)
        assert quantize_to_frame(1.02, 30) == pytest.approx(31 / 30)

    def test_exact_multiples_keep_their_frames(self):
        """0.1 s at 30 fps is 3 frames despite float error."""
        assert floor_frames(0.1, 30) == 3
        assert ceil_frames(0.1, 30) == 3
        assert ceil_frames(0.5, 30) == 15

    def test_seconds_to_ms(self):
        assert seconds_to_ms(2.5) == 2500
        assert seconds_to_ms(0.0004) == 0


class TestAspectFit:
    canvas = Size(1080, 1920)

    def test_cover_fills_canvas(self):
        rect = calculate_fit(Size(1920, 1080), self.canvas, AspectFit.COVER)
        assert (rect.x, rect.y, rect.width, rect.height) == (0, 0, 1080, 1920)

    def test_original_landscape_is_centred(self):
        rect = calculate_fit(Size(1920, 1080), self.canvas, AspectFit.ORIGINAL)
        assert rect.width == pytest.approx(1080)
        assert rect.height == pytest.approx(607.5)
        assert rect.y == pytest.approx((1920 - 607.5) / 2)

    def test_square(self):
        rect = calculate_fit(None, self.canvas, "square")
        assert rect.width == rect.height == 1080
        assert rect.y == pytest.approx(420)

    def test_unknown_size_uses_canvas_aspect(self):
        rect = calculate_fit(None, self.canvas, AspectFit.ORIGINAL)
        assert (rect.width, rect.height) == (1080, 1920)

    def test_zoom_extends_past_canvas(self):
        rect = calculate_fit(None, self.canvas, AspectFit.COVER, zoom=2.0)
        assert rect.width == 2160
        assert rect.x == -540

    def test_make_even(self):
        assert make_even(607.5) == 608
        assert make_even(1079) == 1080
