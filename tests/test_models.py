import dataclasses

import pytest
from PIL import Image

from portrait_studio.models import (
    BackgroundOption, ClothingOption, CropConfig, EditBase, TransformState, ViewportLayout,
)


def test_transform_defaults():
    t = TransformState()
    assert (t.scale, t.offset_x, t.offset_y, t.rotation) == (0.8, 0.0, 0.0, 0.0)


def test_transform_clamped_limits_scale_and_rotation():
    t = TransformState(scale=9.0, offset_x=12.0, offset_y=-4.0, rotation=45.0).clamped()
    assert t == TransformState(5.0, 12.0, -4.0, 30.0)

    t = TransformState(scale=0.01, rotation=-31.0).clamped()
    assert t.scale == 0.1
    assert t.rotation == -30.0


def test_transform_with_scale_respects_custom_maximum():
    assert TransformState().with_scale(4.0).scale == 4.0
    assert TransformState().with_scale(4.0, max_scale=3.0).scale == 3.0
    assert TransformState().with_scale(0.0).scale == 0.1


def test_crop_config_is_immutable_snapshot():
    t = TransformState(scale=1.2, offset_x=10.0, offset_y=20.0, rotation=2.5)
    config = CropConfig.from_transform(t)

    assert config.to_transform() == t
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.scale = 2.0


def test_layout_fits_height_without_upscaling():
    layout = ViewportLayout.measure((1000, 800), (3000, 2000))
    assert (layout.image_w, layout.image_h) == (1200, 800)

    small = ViewportLayout.measure((1000, 800), (150, 200))
    assert (small.image_w, small.image_h) == (150, 200)


def test_layout_aperture_is_three_by_four():
    layout = ViewportLayout.measure((1000, 800), (3000, 2000))
    assert layout.aperture_h == pytest.approx(640)
    assert layout.aperture_w == pytest.approx(480)
    assert layout.settled


def test_layout_aperture_width_capped_by_container():
    layout = ViewportLayout.measure((400, 1000), (100, 200))
    assert layout.aperture_w == pytest.approx(360)
    assert layout.aperture_h == pytest.approx(480)


def test_layout_without_size_is_unsettled():
    assert not ViewportLayout().settled
    assert not ViewportLayout.measure((0, 0), (300, 400)).settled
    assert not ViewportLayout.measure((1000, 800), (0, 0)).settled


def test_handle_hit_testing():
    layout = ViewportLayout.measure((1000, 800), (3000, 2000))
    # Aperture spans x 260..740, y 80..720; handle centre sits 6px inside.
    assert layout.handle_center() == pytest.approx((734, 714))
    assert layout.hits_handle(734, 714)
    assert layout.hits_handle(748, 728)
    assert not layout.hits_handle(500, 400)
    assert not ViewportLayout().hits_handle(0, 0)


def test_edit_base_current_prefers_latest_edit():
    initial = Image.new("RGB", (12, 16), "black")
    edited = Image.new("RGB", (12, 16), "white")

    base = EditBase(initial)
    assert base.current is initial
    assert not base.is_edited

    base = base.with_edit(edited)
    assert base.current is edited
    assert base.is_edited

    base = base.reset()
    assert base.current is initial
    assert base.current_edited is None


def test_options_round_trip_from_strings():
    assert BackgroundOption("soft_blue") is BackgroundOption.SOFT_BLUE
    assert ClothingOption("mens_kimono") is ClothingOption.MENS_KIMONO
    assert len(BackgroundOption) == 6
    assert len(ClothingOption) == 7
