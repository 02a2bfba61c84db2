"""
Editing workflow for one portrait session (Qt-free).

Stages::

    UPLOAD -> CROPPING(initial) -> EDITING <-> CROPPING(final) -> export

:class:`PortraitSession` owns everything the session produces: the uploaded
source, the two independent crop configs, the chained edit result and the
applied background/clothing selections.  AI edits use a two-phase protocol
(``begin_edit`` then ``complete_edit`` or ``fail_edit``) so a caller can run
the service call elsewhere; only one edit may be pending at a time and a
failure changes nothing.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from PIL import Image

from portrait_studio.composite import render_composite
from portrait_studio.config import (
    EXPORT_BASENAME, EXPORT_SIZE, INITIAL_CROP_SIZE, OUTPUT_FORMAT_DEFAULT, PREVIEW_SIZE,
)
from portrait_studio.editor import PortraitEditor
from portrait_studio.image_io import save_image
from portrait_studio.models import (
    BackgroundOption, ClothingOption, CropConfig, EditBase, TransformState, ViewportLayout,
)
from portrait_studio.rasterize import render_crop

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]+')


class Stage(Enum):
    UPLOAD = "upload"
    CROPPING = "cropping"
    EDITING = "editing"


class CropStage(Enum):
    INITIAL = "initial"   # applied to the raw upload
    FINAL = "final"       # applied to the edited composite


class EditKind(Enum):
    BACKGROUND = "background"
    CLOTHING = "clothing"


class WorkflowError(Exception):
    """An operation was requested in a stage that does not allow it."""


class EditInProgressError(WorkflowError):
    """Another AI edit is still pending."""


class EditFailedError(Exception):
    """The image-synthesis service failed; session state is unchanged."""


@dataclass(frozen=True)
class EditRequest:
    kind: EditKind
    option: BackgroundOption | ClothingOption
    base: Image.Image


class PortraitSession:
    """State machine sequencing upload, crop, edit loop, reframe and export."""

    def __init__(self, editor: PortraitEditor | None = None):
        self.editor = editor
        self._clear()

    def _clear(self):
        self.stage = Stage.UPLOAD
        self.crop_stage = CropStage.INITIAL
        self.source: Image.Image | None = None
        self.edit_base: EditBase | None = None
        self.crop_config: CropConfig | None = None
        self.final_crop_config: CropConfig | None = None
        self.composite_preview: Image.Image | None = None
        self.applied_background = BackgroundOption.NONE
        self.applied_clothing = ClothingOption.NONE
        self.subject_name = ""
        self._pending: EditRequest | None = None

    # --- Queries ---

    @property
    def has_initial_crop(self) -> bool:
        return self.edit_base is not None

    @property
    def person_image(self) -> Image.Image | None:
        """Latest AI edit, or None while the initial crop is used unedited."""
        return self.edit_base.current_edited if self.edit_base else None

    @property
    def has_edits(self) -> bool:
        return self.edit_base is not None and self.edit_base.is_edited

    @property
    def edit_pending(self) -> bool:
        return self._pending is not None

    @property
    def crop_source(self) -> Image.Image | None:
        """Image shown in the crop viewport for the current crop stage."""
        if self.crop_stage == CropStage.FINAL:
            return self.composite_preview
        return self.source

    def stored_config(self, crop_stage: CropStage) -> CropConfig | None:
        return self.final_crop_config if crop_stage == CropStage.FINAL else self.crop_config

    def seed_transform(self) -> TransformState:
        """TransformState to start the current crop stage from."""
        stored = self.stored_config(self.crop_stage)
        return stored.to_transform() if stored else TransformState()

    # --- Upload / restart ---

    def upload(self, image: Image.Image) -> TransformState:
        """Start a new session with ``image`` and enter the initial crop."""
        self._require_idle()
        self._clear()
        self.source = image
        self.stage = Stage.CROPPING
        logger.info("Uploaded source image %dx%d", image.width, image.height)
        return self.seed_transform()

    def restart(self):
        """Discard the session and go back to upload."""
        self._require_idle()
        self._clear()
        logger.debug("Session restarted")

    # --- Cropping ---

    def begin_crop(self, crop_stage: CropStage = CropStage.INITIAL) -> TransformState:
        """Re-enter cropping for ``crop_stage``, seeded from its stored config."""
        if crop_stage == CropStage.FINAL:
            return self.start_final_crop()
        self._require_idle()
        if self.source is None:
            raise WorkflowError("No image uploaded")
        self.crop_stage = CropStage.INITIAL
        self.stage = Stage.CROPPING
        logger.debug("Entered initial crop")
        return self.seed_transform()

    def start_final_crop(self) -> TransformState:
        """Render the preview composite and enter the final reframe crop."""
        self._require_idle()
        self._require_initial_crop()
        self.composite_preview = render_composite(self.edit_base.current, *PREVIEW_SIZE)
        self.crop_stage = CropStage.FINAL
        self.stage = Stage.CROPPING
        logger.debug("Entered final crop")
        return self.seed_transform()

    def confirm_crop(self, transform: TransformState, layout: ViewportLayout) -> bool:
        """Store ``transform`` for the current crop stage and return to editing.

        Returns False, changing nothing, while the viewport layout is not yet
        measurable.
        """
        if self.stage != Stage.CROPPING:
            raise WorkflowError(f"Cannot confirm a crop while {self.stage.value}")
        if not layout.settled:
            logger.debug("Crop confirm ignored: layout not settled")
            return False

        config = CropConfig.from_transform(transform)
        if self.crop_stage == CropStage.FINAL:
            self.final_crop_config = config
        else:
            cropped = render_crop(self.source, layout, transform, *INITIAL_CROP_SIZE)
            if cropped is None:
                return False
            self.edit_base = EditBase(cropped)
            self.crop_config = config
            self.applied_background = BackgroundOption.NONE
            self.applied_clothing = ClothingOption.NONE

        logger.info("Confirmed %s crop: %s", self.crop_stage.value, config)
        self.crop_stage = CropStage.INITIAL
        self.stage = Stage.EDITING
        return True

    def cancel_crop(self):
        """Leave cropping without touching any stored config."""
        if self.stage != Stage.CROPPING:
            raise WorkflowError(f"Cannot cancel a crop while {self.stage.value}")
        self.crop_stage = CropStage.INITIAL
        self.stage = Stage.EDITING if self.has_initial_crop else Stage.UPLOAD
        logger.debug("Crop cancelled; back to %s", self.stage.value)

    # --- Editing ---

    def begin_edit(self, kind: EditKind, option) -> EditRequest | None:
        """Start an edit; return the request to run, or None if handled locally.

        "None" selections never call the service: a background reset reverts
        to the initial crop, and so does a clothing reset when no background
        is applied.
        """
        self._require_idle()
        self._require_initial_crop()
        if self.stage != Stage.EDITING:
            raise WorkflowError(f"Cannot edit while {self.stage.value}")

        if kind == EditKind.BACKGROUND:
            option = BackgroundOption(option)
            if option == BackgroundOption.NONE:
                self.reset_to_original()
                return None
        else:
            option = ClothingOption(option)
            if option == ClothingOption.NONE:
                if self.applied_background == BackgroundOption.NONE:
                    self.edit_base = self.edit_base.reset()
                else:
                    # The background-edited image stays as it is.
                    self.edit_base = self.edit_base.with_edit(self.edit_base.current)
                self.applied_clothing = ClothingOption.NONE
                return None

        request = EditRequest(kind, option, self.edit_base.current)
        self._pending = request
        logger.debug("Edit started: %s=%s", kind.value, option.value)
        return request

    def run_edit(self, request: EditRequest) -> Image.Image:
        """Call the editor for ``request``; any failure becomes EditFailedError.

        Touches no session state, so it may run on a worker thread.
        """
        if self.editor is None:
            raise EditFailedError("No image editor is configured")
        try:
            if request.kind == EditKind.BACKGROUND:
                return self.editor.apply_background(request.base, request.option)
            return self.editor.apply_clothing(request.base, request.option)
        except Exception as exc:
            raise EditFailedError(f"{request.kind.value} edit failed: {exc}") from exc

    def complete_edit(self, request: EditRequest, image: Image.Image):
        if request is not self._pending:
            raise WorkflowError("Edit result does not belong to the pending request")
        self._pending = None
        self.edit_base = self.edit_base.with_edit(image)
        if request.kind == EditKind.BACKGROUND:
            self.applied_background = request.option
        else:
            self.applied_clothing = request.option
        logger.info("Applied %s: %s", request.kind.value, request.option.value)

    def fail_edit(self, request: EditRequest, error: Exception | None = None):
        """Drop the pending request; the previous image stays authoritative."""
        if request is not self._pending:
            raise WorkflowError("Failure does not belong to the pending request")
        self._pending = None
        logger.warning("%s edit (%s) failed: %s", request.kind.value, request.option.value, error)

    def apply_background(self, option: BackgroundOption):
        self._apply(EditKind.BACKGROUND, option)

    def apply_clothing(self, option: ClothingOption):
        self._apply(EditKind.CLOTHING, option)

    def _apply(self, kind: EditKind, option):
        request = self.begin_edit(kind, option)
        if request is None:
            return
        try:
            image = self.run_edit(request)
        except EditFailedError as exc:
            self.fail_edit(request, exc)
            raise
        self.complete_edit(request, image)

    def reset_to_original(self):
        """Drop all AI edits; future edits start from the initial crop again."""
        self._require_idle()
        self._require_initial_crop()
        self.edit_base = self.edit_base.reset()
        self.applied_background = BackgroundOption.NONE
        self.applied_clothing = ClothingOption.NONE
        logger.debug("Reset to the initial crop")

    # --- Rendering / export ---

    def render_preview(self) -> Image.Image:
        self._require_initial_crop()
        return render_composite(self.edit_base.current, *PREVIEW_SIZE, final_crop=self.final_crop_config)

    def render_export(self) -> Image.Image:
        self._require_initial_crop()
        return render_composite(
            self.edit_base.current, *EXPORT_SIZE,
            final_crop=self.final_crop_config, high_res=True,
        )

    def export_filename(self) -> str:
        name = _UNSAFE_FILENAME_CHARS.sub("_", self.subject_name.strip()).strip(". ")
        return f"{EXPORT_BASENAME}_{name}" if name else EXPORT_BASENAME

    def export(self, directory: Path, fmt: str = OUTPUT_FORMAT_DEFAULT) -> Path:
        """Render the print-resolution portrait and save it under ``directory``."""
        image = self.render_export()
        return save_image(image, Path(directory) / self.export_filename(), fmt)

    # --- Guards ---

    def _require_idle(self):
        if self._pending is not None:
            raise EditInProgressError("An image edit is still in progress")

    def _require_initial_crop(self):
        if self.edit_base is None:
            raise WorkflowError("No initial crop has been confirmed")
