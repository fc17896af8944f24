import pytest
from pydantic import ValidationError

from dreamhouse.pipeline.models import (
    ImageState,
    Project,
    RoomDesign,
    VideoState,
)

from conftest import make_concept, make_preferences, make_project, png_data_url


class TestPreferences:

    def test_accepts_camel_case_payload(self):
        prefs = make_preferences()
        assert prefs.square_footage == 1800
        assert prefs.color_palette == "Earthy & Organic"
        assert prefs.features == ("Open Floor Plan",)

    def test_rejects_duplicate_features(self):
        with pytest.raises(ValidationError):
            make_preferences(features=["Fireplace", "Fireplace"])

    @pytest.mark.parametrize("field", ["bedrooms", "bathrooms", "stories", "squareFootage"])
    def test_rejects_non_positive_counts(self, field):
        with pytest.raises(ValidationError):
            make_preferences(**{field: 0})

    def test_is_immutable(self):
        prefs = make_preferences()
        with pytest.raises(ValidationError):
            prefs.bedrooms = 4


class TestRoomDesign:

    def test_image_lifecycle(self):
        design = RoomDesign(area="Kitchen", description="d")
        assert design.image_state == ImageState.UNSTARTED

        pending = design.image_pending()
        ready = pending.image_ready(png_data_url())

        assert pending.image_state == ImageState.PENDING
        assert ready.image_state == ImageState.READY
        assert design.image_state == ImageState.UNSTARTED  # original untouched

    def test_failed_image_keeps_description_and_budget(self):
        design = RoomDesign(area="Kitchen", description="Warm oak", budget_estimate="$40,000")
        failed = design.image_pending().image_failed("quota exceeded")
        assert failed.image_state == ImageState.FAILED
        assert failed.description == "Warm oak"
        assert failed.budget_estimate == "$40,000"
        assert failed.image_error == "quota exceeded"

    def test_video_requires_ready_image(self):
        with pytest.raises(ValidationError):
            RoomDesign(area="Kitchen", description="d", video_state=VideoState.PENDING)
        with pytest.raises(ValidationError):
            RoomDesign(area="Kitchen", description="d").image_pending().video_pending()

    def test_ready_states_require_references(self):
        with pytest.raises(ValidationError):
            RoomDesign(area="Kitchen", description="d", image_state=ImageState.READY)
        with pytest.raises(ValidationError):
            RoomDesign(area="Kitchen", description="d", image_state=ImageState.FAILED)

    def test_recolor_keeps_video(self):
        design = RoomDesign(area="Kitchen", description="d").image_ready(png_data_url())
        with_video = design.video_pending().video_ready("/media/videos/k.mp4")
        new_image = png_data_url((1, 2, 3))

        recolored = with_video.recolored(new_image)

        assert recolored.image_url == new_image
        assert recolored.video_state == VideoState.READY
        assert recolored.video_url == "/media/videos/k.mp4"


class TestProject:

    def test_from_concept(self):
        project = Project.from_concept("project-1", make_preferences(), make_concept())
        assert project.name == "My Modern House"
        assert [d.area for d in project.designs][:2] == ["Exterior", "Foyer"]
        assert all(d.image_state == ImageState.UNSTARTED for d in project.designs)
        assert project.budget.overall_estimate == "$450,000"
        assert project.trend_analysis

    def test_rejects_duplicate_areas(self):
        with pytest.raises(ValidationError):
            Project.from_concept(
                "project-1", make_preferences(), make_concept(areas=["Kitchen", "Kitchen"])
            )

    def test_with_design_is_copy_on_write(self):
        project = make_project(ready=False)
        kitchen = project.designs[1].image_pending()

        updated = project.with_design(1, kitchen)

        assert updated is not project
        assert updated.designs[1].image_state == ImageState.PENDING
        assert project.designs[1].image_state == ImageState.UNSTARTED
        assert updated.designs[0] is project.designs[0]

    def test_with_design_refuses_other_area(self):
        project = make_project(ready=False)
        with pytest.raises(ValueError):
            project.with_design(0, project.designs[1])
        with pytest.raises(IndexError):
            project.with_design(5, project.designs[0])
