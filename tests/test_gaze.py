"""
Tests for the gaze estimation chain.
"""

import math
from unittest.mock import patch

import numpy as np
import pytest

from ie_demos.models.gaze import (
    FaceDetector, GazeEstimator, HeadPoseEstimator, LandmarksEstimator, crop_with_border, render_gaze
)
from ie_demos.models.results import BoundingBox, FaceInferenceResults, HeadPoseAngles
from ie_demos.utils.errors import ModelLoadError, ModelOutputError, OutputError

FACE_ROWS = np.array([[[
    [0, 1, 0.9, 0.25, 0.25, 0.75, 0.75],
    [0, 1, 0.3, 0.0, 0.0, 0.2, 0.2],
    [-1, 0, 0.0, 0.0, 0.0, 0.0, 0.0],
]]], dtype=np.float32)


def frame(size=100):
    return np.full((size, size, 3), 120, dtype=np.uint8)


def register_gaze(engine, vector=(0.0, 0.0, -1.0)):
    engine.register(
        "gaze.xml",
        inputs={"left_eye_image": (1, 3, 60, 60), "right_eye_image": (1, 3, 60, 60), "head_pose_angles": (1, 3)},
        outputs={"gaze_vector": (1, 3)},
        responder={"gaze_vector": np.array([vector], dtype=np.float32)}
    )


def face_with_pose(roll=0.0):
    return FaceInferenceResults(
        face_box=BoundingBox(20, 20, 60, 60),
        landmarks=[(30.0, 40.0), (45.0, 40.0), (55.0, 40.0), (70.0, 40.0)],
        head_pose=HeadPoseAngles(yaw=10.0, pitch=-5.0, roll=roll)
    )


class TestFaceDetector:
    """Test face detection decoding."""

    def test_adjust_box_makes_square(self):
        box = FaceDetector.adjust_box(100, 100, 100, 100)
        # x -= 6.7, y -= 2.8, w = 115, h = 113, then squared around the centre
        assert box == BoundingBox(93, 96, 115, 115)

    def test_detect(self, fake_engine):
        fake_engine.register("face.xml", inputs={"data": (1, 3, 32, 32)}, outputs={"detections": (1, 1, 3, 7)},
                             responder={"detections": FACE_ROWS})
        detector = FaceDetector(fake_engine, "face.xml", threshold=0.5)

        faces = detector.detect(frame())

        assert len(faces) == 1
        face = faces[0]
        assert face.face_confidence == pytest.approx(0.9)
        assert face.face_box.width == face.face_box.height
        assert face.face_box.x >= 0 and face.face_box.x2 <= 100
        assert 20 <= face.face_box.x <= 25

    def test_boxes_are_clipped(self, fake_engine):
        rows = np.array([[[[0, 1, 0.9, 0.8, 0.8, 1.0, 1.0]]]], dtype=np.float32)
        fake_engine.register("face.xml", inputs={"data": (1, 3, 32, 32)}, outputs={"detections": (1, 1, 1, 7)},
                             responder={"detections": rows})
        face = FaceDetector(fake_engine, "face.xml").detect(frame())[0]
        assert face.face_box.x2 == 100
        assert face.face_box.y2 == 100

    def test_inverted_box_is_dropped(self, fake_engine):
        rows = np.array([[[
            [0, 1, 0.9, 0.6, 0.6, 0.4, 0.5],
            [0, 1, 0.9, 0.2, 0.2, 0.2, 0.6],
            [0, 1, 0.9, 0.25, 0.25, 0.75, 0.75],
        ]]], dtype=np.float32)
        fake_engine.register("face.xml", inputs={"data": (1, 3, 32, 32)}, outputs={"detections": (1, 1, 3, 7)},
                             responder={"detections": rows})

        faces = FaceDetector(fake_engine, "face.xml").detect(np.zeros((100, 100, 3), dtype=np.uint8))

        assert len(faces) == 1
        assert faces[0].face_box.width > 0


class TestLandmarksAndPose:
    """Test landmark and head pose estimators."""

    def test_landmarks_map_to_frame(self, fake_engine):
        points = np.zeros((1, 70), dtype=np.float32)
        points[0, :4] = [0.5, 0.5, 0.25, 0.75]
        fake_engine.register("lm.xml", inputs={"data": (1, 3, 60, 60)}, outputs={"align_fc3": (1, 70)},
                             responder={"align_fc3": points})
        results = FaceInferenceResults(face_box=BoundingBox(10, 20, 40, 40))

        LandmarksEstimator(fake_engine, "lm.xml").estimate(frame(), results)

        assert len(results.landmarks) == 35
        assert results.landmarks[0] == (30.0, 40.0)
        assert results.landmarks[1] == (20.0, 50.0)

    def test_head_pose(self, fake_engine):
        fake_engine.register(
            "hp.xml",
            inputs={"data": (1, 3, 60, 60)},
            outputs={"angle_y_fc": (1, 1), "angle_p_fc": (1, 1), "angle_r_fc": (1, 1)},
            responder={"angle_y_fc": [[10.0]], "angle_p_fc": [[-5.0]], "angle_r_fc": [[3.0]]}
        )
        results = FaceInferenceResults(face_box=BoundingBox(10, 10, 50, 50))

        HeadPoseEstimator(fake_engine, "hp.xml").estimate(frame(), results)

        assert results.head_pose == HeadPoseAngles(yaw=10.0, pitch=-5.0, roll=3.0)

    def test_head_pose_requires_angle_outputs(self, fake_engine):
        fake_engine.register("hp.xml", inputs={"data": (1, 3, 60, 60)}, outputs={"angle_y_fc": (1, 1)})
        with pytest.raises(ModelLoadError, match="angle_p_fc"):
            HeadPoseEstimator(fake_engine, "hp.xml")


class TestGazeEstimator:
    """Test eye boxes, roll alignment and gaze angles."""

    def test_eye_box(self, fake_engine):
        register_gaze(fake_engine)
        estimator = GazeEstimator(fake_engine, "gaze.xml")
        assert estimator.eye_box((10, 10), (20, 10)) == BoundingBox(6, 1, 18, 18)

    def test_straight_gaze_without_roll_align(self, fake_engine):
        register_gaze(fake_engine, vector=(0.0, 0.0, -2.0))
        estimator = GazeEstimator(fake_engine, "gaze.xml", roll_align=False)
        results = face_with_pose(roll=3.0)

        estimator.estimate(frame(), results)

        assert results.gaze_vector == pytest.approx((0.0, 0.0, -1.0))
        assert results.gaze_yaw == pytest.approx(0.0)
        assert results.gaze_pitch == pytest.approx(0.0)
        sent = fake_engine.networks["gaze.xml"].requests[0].calls[0]
        np.testing.assert_allclose(sent["head_pose_angles"], [[10.0, -5.0, 3.0]])
        assert sent["left_eye_image"].shape == (1, 3, 60, 60)

    def test_roll_alignment_rotates_vector_back(self, fake_engine):
        register_gaze(fake_engine, vector=(1.0, 0.0, 0.0))
        estimator = GazeEstimator(fake_engine, "gaze.xml", roll_align=True)
        results = face_with_pose(roll=90.0)

        estimator.estimate(frame(), results)

        sent = fake_engine.networks["gaze.xml"].requests[0].calls[0]
        np.testing.assert_allclose(sent["head_pose_angles"], [[10.0, -5.0, 0.0]])
        assert results.gaze_vector == pytest.approx((0.0, -1.0, 0.0), abs=1e-6)
        assert results.gaze_pitch == pytest.approx(-90.0)

    def test_gaze_angles(self, fake_engine):
        vector = (math.sin(math.radians(30)), 0.0, -math.cos(math.radians(30)))
        register_gaze(fake_engine, vector=vector)
        results = face_with_pose()

        GazeEstimator(fake_engine, "gaze.xml").estimate(frame(), results)

        assert results.gaze_yaw == pytest.approx(30.0, abs=1e-4)
        assert results.left_eye_midpoint == pytest.approx((37.5, 40.0), abs=1)

    def test_requires_landmarks(self, fake_engine):
        register_gaze(fake_engine)
        results = FaceInferenceResults(face_box=BoundingBox(0, 0, 10, 10))
        with pytest.raises(ModelOutputError):
            GazeEstimator(fake_engine, "gaze.xml").estimate(frame(), results)

    def test_missing_input(self, fake_engine):
        fake_engine.register("gaze.xml", inputs={"left_eye_image": (1, 3, 60, 60)}, outputs={"gaze_vector": (1, 3)})
        with pytest.raises(ModelLoadError, match="right_eye_image"):
            GazeEstimator(fake_engine, "gaze.xml")


class TestHelpers:
    """Test cropping and rendering helpers."""

    def test_crop_with_border_keeps_box_size(self):
        crop = crop_with_border(frame(20), BoundingBox(-5, 10, 15, 15))
        assert crop.shape == (15, 15, 3)
        assert (crop == 120).all()

    def test_render_gaze_draws_on_copy(self):
        results = face_with_pose()
        results.gaze_vector = (1.0, 0.0, 0.0)
        results.left_eye_midpoint = (37.0, 40.0)
        results.right_eye_midpoint = (62.0, 40.0)
        source = frame()

        rendered = render_gaze(source, [results])

        assert rendered.shape == source.shape
        assert (source == 120).all()
        assert not np.array_equal(rendered, source)

    def test_render_failure_is_output_error(self):
        with patch('ie_demos.models.gaze.put_text_lines', side_effect=ValueError("unsupported depth")):
            with pytest.raises(OutputError, match="unsupported depth") as exc_info:
                render_gaze(frame(), [face_with_pose()])
        assert exc_info.value.context['function'] == "render_gaze"
