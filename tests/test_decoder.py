"""
Tests for the output layout chain and detection decoding.
"""

import random
from typing import Dict, Optional
from unittest.mock import Mock

import numpy as np
import pytest

from detection.decoder import OutputDecoder, read_count
from detection.fallback import FallbackDetectionGenerator
from detection.layouts import (
    CLASSES_FIRST,
    DEFAULT_LAYOUTS,
    SCORES_FIRST,
    OutputLayout,
    get_binding,
)
from models.detection import Label, LabelTable
from models.errors import RuntimeInferenceError, ShapeMismatchError

INPUT = np.zeros((1, 3, 512, 512), dtype=np.float32)


class MockBackend:
    """
    Backend that emits fixed output arrays by index.

    A run() whose buffers do not match the fixed outputs exactly raises
    ShapeMismatchError, like an interpreter would.
    """

    def __init__(self, outputs: Optional[Dict[int, np.ndarray]] = None, fail_runtime: bool = False):
        self.outputs = outputs or {}
        self.fail_runtime = fail_runtime
        self.calls = []

    def run(self, input_tensor, outputs):
        self.calls.append({i: tuple(b.shape) for i, b in outputs.items()})
        if self.fail_runtime:
            raise RuntimeInferenceError("interpreter crashed")
        for index, buffer in outputs.items():
            expected = self.outputs.get(index)
            if expected is None or expected.shape != buffer.shape:
                raise ShapeMismatchError(f"output {index}")
        for index, buffer in outputs.items():
            buffer[...] = self.outputs[index]

    def close(self):
        pass


def batched_outputs(n, boxes, scores, classes, capacity=100):
    """Outputs for the [1,N,4]/[1,N]/[1,N]/[1] layout, scores-first order."""
    b = np.zeros((1, capacity, 4), dtype=np.float32)
    s = np.zeros((1, capacity), dtype=np.float32)
    c = np.zeros((1, capacity), dtype=np.float32)
    for i, (box, score, cls) in enumerate(zip(boxes, scores, classes)):
        b[0, i] = box
        s[0, i] = score
        c[0, i] = cls
    return {0: b, 1: s, 2: c, 3: np.array([n], dtype=np.float32)}


def unbatched_outputs(n, boxes, scores, classes, capacity=100):
    """Outputs for the [N,4]/[N]/[N]/scalar layout, scores-first order."""
    b = np.zeros((capacity, 4), dtype=np.float32)
    s = np.zeros((capacity,), dtype=np.float32)
    c = np.zeros((capacity,), dtype=np.float32)
    for i, (box, score, cls) in enumerate(zip(boxes, scores, classes)):
        b[i] = box
        s[i] = score
        c[i] = cls
    return {0: b, 1: s, 2: c, 3: np.array(n, dtype=np.float32)}


@pytest.fixture
def fallback():
    return Mock(
        wraps=FallbackDetectionGenerator(
            rng=random.Random(0),
            labels=LabelTable().labels,
            count=2,
        )
    )


@pytest.fixture
def decoder(fallback):
    return OutputDecoder(fallback=fallback, conf_threshold=0.3)


class TestBatchedLayout:
    def test_single_detection(self, decoder, fallback):
        backend = MockBackend(batched_outputs(1, [[0.1, 0.1, 0.2, 0.2]], [0.42], [2]))

        detections = decoder.decode(backend, INPUT, width=1000, height=800)

        assert len(detections) == 1
        det = detections[0]
        assert det.box == pytest.approx((100, 80, 200, 160))
        assert det.label is Label.PIE
        assert det.score == pytest.approx(0.42)
        assert det.is_fallback is False
        fallback.generate.assert_not_called()
        assert len(backend.calls) == 1

    def test_buffers_bound_by_index(self, decoder):
        backend = MockBackend(batched_outputs(1, [[0.1, 0.1, 0.2, 0.2]], [0.42], [2]))
        decoder.decode(backend, INPUT, 1000, 800)
        assert backend.calls[0] == {0: (1, 100, 4), 1: (1, 100), 2: (1, 100), 3: (1,)}

    def test_threshold_filters(self, decoder):
        backend = MockBackend(batched_outputs(
            3,
            [[0.1, 0.1, 0.2, 0.2], [0.3, 0.3, 0.4, 0.4], [0.5, 0.5, 0.6, 0.6]],
            [0.9, 0.25, 0.31],
            [1, 2, 3],
        ))

        detections = decoder.decode(backend, INPUT, 1000, 800)

        assert [d.label for d in detections] == [Label.PIH, Label.SPOT]
        assert all(d.score > 0.3 for d in detections)

    def test_score_equal_to_threshold_is_dropped(self, fallback):
        decoder = OutputDecoder(fallback=fallback, conf_threshold=0.5)
        backend = MockBackend(batched_outputs(2, [[0, 0, 0.1, 0.1]] * 2, [0.5, 0.75], [1, 1]))

        detections = decoder.decode(backend, INPUT, 100, 100)

        assert len(detections) == 1
        assert detections[0].score == 0.75

    def test_only_count_slots_are_read(self, decoder):
        # Slot 1 has a high score but lies beyond count
        backend = MockBackend(batched_outputs(1, [[0, 0, 0.1, 0.1]] * 2, [0.8, 0.9], [1, 2]))
        detections = decoder.decode(backend, INPUT, 100, 100)
        assert len(detections) == 1
        assert detections[0].label is Label.PIH

    def test_count_clamped_to_capacity(self, decoder):
        outputs = batched_outputs(0, [], [], [])
        outputs[1][:] = 0.9
        outputs[2][:] = 1
        outputs[3][0] = 5000
        detections = decoder.decode(MockBackend(outputs), INPUT, 100, 100)
        assert len(detections) == 100

    def test_zero_count_triggers_fallback(self, decoder, fallback):
        backend = MockBackend(batched_outputs(0, [[0.1, 0.1, 0.2, 0.2]], [0.9], [1]))

        detections = decoder.decode(backend, INPUT, 1000, 800)

        fallback.generate.assert_called_once_with(1000, 800)
        assert len(detections) == 2
        assert all(d.is_fallback for d in detections)

    def test_all_below_threshold_triggers_fallback(self, decoder, fallback):
        backend = MockBackend(batched_outputs(2, [[0, 0, 0.1, 0.1]] * 2, [0.1, 0.2], [1, 2]))

        detections = decoder.decode(backend, INPUT, 1000, 800)

        fallback.generate.assert_called_once()
        assert all(d.is_fallback for d in detections)
        # A successful decode stops the chain even when it falls back
        assert len(backend.calls) == 1

    def test_negative_count_triggers_fallback(self, decoder, fallback):
        outputs = batched_outputs(1, [[0, 0, 0.1, 0.1]], [0.9], [1])
        outputs[3][0] = -3
        decoder.decode(MockBackend(outputs), INPUT, 100, 100)
        fallback.generate.assert_called_once()

    def test_unknown_class_id(self, decoder):
        backend = MockBackend(batched_outputs(1, [[0, 0, 0.1, 0.1]], [0.9], [9]))
        detections = decoder.decode(backend, INPUT, 100, 100)
        assert detections[0].label is Label.UNKNOWN

    def test_scores_are_not_clamped(self, decoder):
        backend = MockBackend(batched_outputs(1, [[0, 0, 0.1, 0.1]], [1.7], [1]))
        detections = decoder.decode(backend, INPUT, 100, 100)
        assert detections[0].score == pytest.approx(1.7)

    def test_inverted_box_kept_as_is(self, decoder):
        backend = MockBackend(batched_outputs(1, [[0.5, 0.5, 0.25, 0.25]], [0.9], [3]))
        det = decoder.decode(backend, INPUT, 200, 100)[0]
        assert det.box == pytest.approx((100, 50, 50, 25))

    def test_nan_box_triggers_fallback(self, decoder, fallback):
        backend = MockBackend(batched_outputs(1, [[np.nan, 0.1, 0.2, 0.2]], [0.9], [2]))

        detections = decoder.decode(backend, INPUT, 1000, 800)

        fallback.generate.assert_called_once_with(1000, 800)
        assert all(d.is_fallback for d in detections)

    def test_non_finite_rows_are_skipped(self, decoder, fallback):
        backend = MockBackend(batched_outputs(
            3,
            [[0.1, 0.1, np.inf, 0.2], [0.3, 0.3, 0.4, 0.4], [0.5, 0.5, 0.6, 0.6]],
            [0.9, np.inf, 0.8],
            [1, 2, 3],
        ))

        detections = decoder.decode(backend, INPUT, 100, 100)

        assert [d.label for d in detections] == [Label.SPOT]
        fallback.generate.assert_not_called()


class TestUnbatchedLayout:
    def test_decodes_after_batched_mismatch(self, decoder, fallback):
        backend = MockBackend(unbatched_outputs(
            2, [[0.1, 0.2, 0.3, 0.4], [0.5, 0.5, 0.9, 0.9]], [0.8, 0.6], [3, 1]
        ))

        detections = decoder.decode(backend, INPUT, 1000, 800)

        assert len(backend.calls) == 2
        assert backend.calls[1] == {0: (100, 4), 1: (100,), 2: (100,), 3: ()}
        assert [d.label for d in detections] == [Label.SPOT, Label.PIH]
        assert detections[0].box == pytest.approx((100, 160, 300, 320))
        assert detections[1].box == pytest.approx((500, 400, 900, 720))
        fallback.generate.assert_not_called()


class TestSingleRowLayout:
    def test_decodes_one_row(self, decoder):
        backend = MockBackend({
            0: np.array([[0.25, 0.5, 0.75, 1.0]], dtype=np.float32),
            1: np.array([0.66], dtype=np.float32),
            2: np.array([1], dtype=np.float32),
            3: np.array([1], dtype=np.float32),
        })

        detections = decoder.decode(backend, INPUT, 400, 200)

        assert len(backend.calls) == 3
        assert len(detections) == 1
        assert detections[0].box == pytest.approx((100, 100, 300, 200))
        assert detections[0].label is Label.PIH


class TestSingleLayout:
    def test_decodes_rank1_boxes_without_count(self, decoder):
        backend = MockBackend({
            0: np.array([0.1, 0.2, 0.3, 0.4], dtype=np.float32),
            1: np.array([0.95], dtype=np.float32),
            2: np.array([2], dtype=np.float32),
        })

        detections = decoder.decode(backend, INPUT, 1000, 1000)

        assert len(backend.calls) == 4
        assert backend.calls[3] == {0: (4,), 1: (1,), 2: (1,)}
        assert len(detections) == 1
        assert detections[0].box == pytest.approx((100, 200, 300, 400))
        assert detections[0].label is Label.PIE

    def test_rank1_below_threshold_falls_back(self, decoder, fallback):
        backend = MockBackend({
            0: np.array([0.1, 0.2, 0.3, 0.4], dtype=np.float32),
            1: np.array([0.1], dtype=np.float32),
            2: np.array([2], dtype=np.float32),
        })
        detections = decoder.decode(backend, INPUT, 1000, 1000)
        fallback.generate.assert_called_once()
        assert all(d.is_fallback for d in detections)


class TestChainFailure:
    def test_all_layouts_mismatch(self, decoder, fallback):
        backend = MockBackend({})

        detections = decoder.decode(backend, INPUT, 1000, 800)

        assert len(backend.calls) == len(DEFAULT_LAYOUTS)
        fallback.generate.assert_called_once_with(1000, 800)
        assert len(detections) == 2
        assert all(d.is_fallback for d in detections)

    def test_runtime_error_goes_straight_to_fallback(self, decoder, fallback):
        backend = MockBackend(fail_runtime=True)

        detections = decoder.decode(backend, INPUT, 640, 480)

        assert len(backend.calls) == 1
        fallback.generate.assert_called_once_with(640, 480)
        assert len(detections) == 2

    def test_layouts_tried_in_order(self, decoder):
        backend = MockBackend({})
        decoder.decode(backend, INPUT, 10, 10)
        box_shapes = [call[0] for call in backend.calls]
        assert box_shapes == [(1, 100, 4), (100, 4), (1, 4), (4,)]

    def test_requires_layouts(self, fallback):
        with pytest.raises(ValueError):
            OutputDecoder(fallback=fallback, layouts=[])


class TestBindings:
    def test_classes_first_binding(self, fallback):
        outputs = batched_outputs(1, [[0.1, 0.1, 0.2, 0.2]], [0.42], [2])
        # Model emits class ids at index 1 and scores at index 2
        outputs[1], outputs[2] = outputs[2], outputs[1]
        decoder = OutputDecoder(fallback=fallback, binding=CLASSES_FIRST)

        detections = decoder.decode(MockBackend(outputs), INPUT, 1000, 800)

        assert len(detections) == 1
        assert detections[0].label is Label.PIE
        assert detections[0].score == pytest.approx(0.42)

    def test_wrong_binding_swaps_semantics_silently(self, fallback):
        # Scores-first model read with the classes-first binding
        outputs = batched_outputs(1, [[0.1, 0.1, 0.2, 0.2]], [0.9], [2])
        decoder = OutputDecoder(fallback=fallback, binding=CLASSES_FIRST)

        detections = decoder.decode(MockBackend(outputs), INPUT, 1000, 800)

        assert len(detections) == 1
        assert detections[0].score == pytest.approx(2.0)
        assert detections[0].label is Label.UNKNOWN
        fallback.generate.assert_not_called()

    def test_get_binding(self):
        assert get_binding("scores_first") == SCORES_FIRST
        assert get_binding("classes_first") == CLASSES_FIRST
        with pytest.raises(ValueError):
            get_binding("boxes_last")


class TestReadCount:
    def test_scalar(self):
        assert read_count(np.array(3.0), 100) == 3

    def test_vector(self):
        assert read_count(np.array([7.0]), 100) == 7

    def test_matrix(self):
        assert read_count(np.array([[5.0]]), 100) == 5

    def test_absent_reads_every_slot(self):
        assert read_count(None, 1) == 1

    def test_clamped(self):
        assert read_count(np.array([250.0]), 100) == 100
        assert read_count(np.array([-1.0]), 100) == 0

    def test_truncates(self):
        assert read_count(np.array([2.9]), 100) == 2

    def test_nan(self):
        assert read_count(np.array([np.nan]), 100) == 0

    def test_rank2_count_layout(self, fallback):
        layout = OutputLayout(
            name="matrix_count",
            boxes=(1, 10, 4),
            scores=(1, 10),
            classes=(1, 10),
            count=(1, 1),
        )
        decoder = OutputDecoder(fallback=fallback, layouts=[layout])
        outputs = batched_outputs(0, [[0.0, 0.0, 0.5, 0.5]], [0.8], [3], capacity=10)
        outputs[3] = np.array([[1]], dtype=np.float32)

        detections = decoder.decode(MockBackend(outputs), INPUT, 100, 100)

        assert len(detections) == 1
        assert detections[0].label is Label.SPOT


class TestOutputLayout:
    def test_capacity(self):
        assert [layout.capacity for layout in DEFAULT_LAYOUTS] == [100, 100, 1, 1]

    def test_allocate_zero_filled(self):
        buffers = DEFAULT_LAYOUTS[0].allocate()
        assert buffers.boxes.shape == (1, 100, 4)
        assert not buffers.boxes.any()
        assert buffers.count.shape == (1,)
        assert DEFAULT_LAYOUTS[3].allocate().count is None

    def test_invalid_box_shape(self):
        with pytest.raises(ValueError):
            OutputLayout(name="bad", boxes=(100, 5), scores=(100,), classes=(100,))

    def test_invalid_batch(self):
        with pytest.raises(ValueError):
            OutputLayout(name="bad", boxes=(2, 100, 4), scores=(2, 100), classes=(2, 100))
