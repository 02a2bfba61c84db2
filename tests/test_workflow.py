import pytest
from PIL import Image

from portrait_studio.models import (
    BackgroundOption, ClothingOption, CropConfig, TransformState, ViewportLayout,
)
from portrait_studio.viewport import PointerDown, PointerMove, PointerUp, ViewportController, Wheel
from portrait_studio.workflow import (
    CropStage, EditFailedError, EditInProgressError, EditKind, PortraitSession, Stage,
    WorkflowError,
)


class FakeEditor:
    """Returns a solid image per option and records what it was given."""

    def __init__(self, fail_on=()):
        self.calls = []
        self.fail_on = set(fail_on)

    def _edit(self, image, option):
        self.calls.append((option, image))
        if option in self.fail_on:
            raise RuntimeError("service unavailable")
        colour = (len(self.calls) * 40 % 256, 100, 150)
        return Image.new("RGB", image.size, colour)

    def apply_background(self, image, option):
        return self._edit(image, option)

    def apply_clothing(self, image, option):
        return self._edit(image, option)


def _layout(image):
    return ViewportLayout.measure((1000, 800), image.size)


@pytest.fixture
def editor():
    return FakeEditor()


@pytest.fixture
def session(editor, portrait_source):
    """A session with the initial crop already confirmed."""
    s = PortraitSession(editor)
    s.upload(portrait_source)
    assert s.confirm_crop(TransformState(scale=1.6), _layout(portrait_source))
    return s


# --- Upload and initial crop ---

def test_upload_enters_initial_crop(portrait_source):
    s = PortraitSession()
    seed = s.upload(portrait_source)

    assert s.stage == Stage.CROPPING
    assert s.crop_stage == CropStage.INITIAL
    assert seed == TransformState()
    assert s.crop_source is portrait_source


def test_confirm_waits_for_settled_layout(portrait_source):
    s = PortraitSession()
    s.upload(portrait_source)

    assert not s.confirm_crop(TransformState(), ViewportLayout())
    assert s.stage == Stage.CROPPING
    assert s.crop_config is None
    assert not s.has_initial_crop


def test_confirm_initial_crop(session):
    assert session.stage == Stage.EDITING
    assert session.crop_config == CropConfig(1.6, 0.0, 0.0, 0.0)
    assert session.edit_base.initial_crop.size == (1200, 1600)
    assert session.person_image is None


def test_cancel_before_first_crop_returns_to_upload(portrait_source):
    s = PortraitSession()
    s.upload(portrait_source)
    s.cancel_crop()
    assert s.stage == Stage.UPLOAD


def test_cancel_discards_adjustments(session, portrait_source):
    stored = session.crop_config

    ctrl = ViewportController(session.begin_crop(), _layout(portrait_source))
    assert ctrl.transform == stored.to_transform()
    ctrl.handle(PointerDown(100, 100))
    ctrl.handle(PointerMove(160, 70))
    ctrl.handle(PointerUp())
    ctrl.handle(Wheel(-120))
    assert ctrl.transform != stored.to_transform()

    session.cancel_crop()

    assert session.stage == Stage.EDITING
    assert session.crop_config is stored
    assert session.begin_crop() == stored.to_transform()


def test_cancel_final_crop_keeps_previous_final_config(session):
    session.start_final_crop()
    session.confirm_crop(TransformState(scale=1.2, offset_x=15), _layout(session.composite_preview))
    stored = session.final_crop_config

    ctrl = ViewportController(session.begin_crop(CropStage.FINAL), _layout(session.composite_preview))
    ctrl.handle(Wheel(120))
    ctrl.handle(PointerDown(10, 10))
    ctrl.handle(PointerMove(-30, 40))
    session.cancel_crop()

    assert session.final_crop_config is stored
    assert session.render_preview().size == (800, 1066)


def test_recrop_discards_edits_but_keeps_final_crop(session, portrait_source):
    session.apply_background(BackgroundOption.SOFT_BLUE)
    session.start_final_crop()
    session.confirm_crop(TransformState(scale=1.2), _layout(session.composite_preview))
    final = session.final_crop_config

    session.begin_crop(CropStage.INITIAL)
    session.confirm_crop(TransformState(scale=2.0), _layout(portrait_source))

    assert session.person_image is None
    assert session.applied_background == BackgroundOption.NONE
    assert session.crop_config.scale == 2.0
    assert session.final_crop_config is final


# --- Final crop ---

def test_final_crop_is_independent_of_initial_crop(session):
    initial = session.crop_config

    seed = session.start_final_crop()
    assert session.crop_stage == CropStage.FINAL
    assert session.composite_preview.size == (800, 1066)
    assert session.crop_source is session.composite_preview
    assert seed == TransformState()

    session.confirm_crop(TransformState(scale=1.1, offset_x=40), _layout(session.composite_preview))
    assert session.final_crop_config == CropConfig(1.1, 40.0, 0.0, 0.0)
    assert session.crop_config is initial
    assert session.stage == Stage.EDITING

    assert session.begin_crop(CropStage.FINAL) == session.final_crop_config.to_transform()
    session.cancel_crop()
    assert session.begin_crop(CropStage.INITIAL) == initial.to_transform()


def test_final_crop_requires_initial_crop(portrait_source):
    s = PortraitSession()
    s.upload(portrait_source)
    with pytest.raises(WorkflowError):
        s.start_final_crop()


# --- Editing ---

def test_edits_chain_on_latest_result(session, editor):
    initial = session.edit_base.initial_crop

    session.apply_background(BackgroundOption.SOFT_BLUE)
    with_background = session.person_image
    session.apply_clothing(ClothingOption.MENS_SUIT_BLACK)

    assert editor.calls[0] == (BackgroundOption.SOFT_BLUE, initial)
    assert editor.calls[1] == (ClothingOption.MENS_SUIT_BLACK, with_background)
    assert session.applied_background == BackgroundOption.SOFT_BLUE
    assert session.applied_clothing == ClothingOption.MENS_SUIT_BLACK


def test_background_none_reverts_to_initial_crop(session, editor):
    session.apply_background(BackgroundOption.SOFT_PINK)
    session.apply_clothing(ClothingOption.MENS_KIMONO)

    session.apply_background(BackgroundOption.NONE)

    assert session.person_image is None
    assert session.edit_base.current is session.edit_base.initial_crop
    assert session.applied_background == BackgroundOption.NONE
    assert session.applied_clothing == ClothingOption.NONE
    assert len(editor.calls) == 2


def test_background_none_after_background_only(session, editor):
    session.apply_background(BackgroundOption.SOFT_BLUE)
    assert session.has_edits

    session.apply_background(BackgroundOption.NONE)

    assert not session.has_edits
    assert session.person_image is None
    assert session.edit_base.current is session.edit_base.initial_crop
    assert session.applied_background == BackgroundOption.NONE
    assert session.applied_clothing == ClothingOption.NONE
    assert len(editor.calls) == 1


def test_clothing_none_without_background_reverts(session):
    session.apply_clothing(ClothingOption.WOMENS_KIMONO_BLACK)
    session.apply_clothing(ClothingOption.NONE)

    assert session.person_image is None
    assert session.applied_clothing == ClothingOption.NONE


def test_clothing_none_with_background_keeps_image(session, editor):
    session.apply_background(BackgroundOption.FRESH_GREEN)
    session.apply_clothing(ClothingOption.MENS_SUIT_NAVY)
    current = session.person_image

    session.apply_clothing(ClothingOption.NONE)

    assert session.person_image is current
    assert session.applied_background == BackgroundOption.FRESH_GREEN
    assert session.applied_clothing == ClothingOption.NONE
    assert len(editor.calls) == 2


def test_failed_edit_changes_nothing(portrait_source):
    editor = FakeEditor(fail_on={ClothingOption.WOMENS_SUIT_BLACK})
    s = PortraitSession(editor)
    s.upload(portrait_source)
    s.confirm_crop(TransformState(scale=1.6), _layout(portrait_source))
    s.apply_background(BackgroundOption.WHITE_GREY)
    before = s.person_image

    with pytest.raises(EditFailedError) as excinfo:
        s.apply_clothing(ClothingOption.WOMENS_SUIT_BLACK)

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert s.person_image is before
    assert s.applied_background == BackgroundOption.WHITE_GREY
    assert s.applied_clothing == ClothingOption.NONE
    assert not s.edit_pending

    s.apply_clothing(ClothingOption.MENS_KIMONO)
    assert s.applied_clothing == ClothingOption.MENS_KIMONO


def test_edit_without_editor_fails_cleanly(portrait_source):
    s = PortraitSession()
    s.upload(portrait_source)
    s.confirm_crop(TransformState(scale=1.6), _layout(portrait_source))

    with pytest.raises(EditFailedError):
        s.apply_background(BackgroundOption.SOFT_BLUE)
    assert s.person_image is None
    assert not s.edit_pending


def test_only_one_edit_in_flight(session):
    request = session.begin_edit(EditKind.BACKGROUND, BackgroundOption.SOFT_PINK)
    assert session.edit_pending

    with pytest.raises(EditInProgressError):
        session.begin_edit(EditKind.CLOTHING, ClothingOption.MENS_KIMONO)
    with pytest.raises(EditInProgressError):
        session.start_final_crop()
    with pytest.raises(EditInProgressError):
        session.reset_to_original()

    result = session.run_edit(request)
    session.complete_edit(request, result)

    assert not session.edit_pending
    assert session.person_image is result
    assert session.applied_background == BackgroundOption.SOFT_PINK


def test_stale_result_is_rejected(session):
    request = session.begin_edit(EditKind.BACKGROUND, BackgroundOption.SOFT_BLUE)
    session.fail_edit(request, RuntimeError("timeout"))

    with pytest.raises(WorkflowError):
        session.complete_edit(request, Image.new("RGB", (10, 10)))
    assert session.person_image is None


def test_begin_edit_accepts_option_values(session):
    request = session.begin_edit(EditKind.CLOTHING, "mens_kimono")
    assert request.option is ClothingOption.MENS_KIMONO
    session.fail_edit(request)


def test_editing_requires_editing_stage(session):
    session.begin_crop()
    with pytest.raises(WorkflowError):
        session.apply_background(BackgroundOption.SOFT_BLUE)


def test_reset_to_original(session):
    session.apply_background(BackgroundOption.SOFT_BLUE)
    session.apply_clothing(ClothingOption.MENS_SUIT_BLACK)

    session.reset_to_original()

    assert session.person_image is None
    assert session.applied_background == BackgroundOption.NONE
    assert session.applied_clothing == ClothingOption.NONE


def test_restart_clears_everything(session):
    session.apply_background(BackgroundOption.SOFT_BLUE)
    session.restart()

    assert session.stage == Stage.UPLOAD
    assert session.source is None
    assert not session.has_initial_crop
    assert session.crop_config is None


# --- Rendering and export ---

def test_render_sizes(session):
    assert session.render_preview().size == (800, 1066)
    assert session.render_export().size == (2700, 3600)


def test_export_requires_initial_crop(portrait_source):
    s = PortraitSession()
    s.upload(portrait_source)
    with pytest.raises(WorkflowError):
        s.render_export()


@pytest.mark.parametrize("name, expected", [
    ("", "portrait"),
    ("   ", "portrait"),
    ("Jane Doe", "portrait_Jane Doe"),
    ("a/b:c", "portrait_a_b_c"),
])
def test_export_filename(session, name, expected):
    session.subject_name = name
    assert session.export_filename() == expected


def test_export_writes_print_resolution_file(session, tmp_path):
    session.subject_name = "Jane Doe"

    first = session.export(tmp_path)
    second = session.export(tmp_path, "JPEG")
    third = session.export(tmp_path)

    assert first.name == "portrait_Jane Doe.png"
    assert second.name == "portrait_Jane Doe.jpg"
    assert third.name == "portrait_Jane Doe-01.png"
    with Image.open(first) as img:
        assert img.size == (2700, 3600)
