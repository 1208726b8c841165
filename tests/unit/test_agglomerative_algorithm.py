"""
Unit tests for the average-linkage clustering algorithm.

Tests the AverageLinkageAlgorithm class including:
- Merge sequence and heights
- Tie-breaking and NaN handling
- Cancellation polling
- Progress reporting
"""

from unittest.mock import Mock

import numpy as np
import pytest

from hclust.config.settings_loader import EngineSettings
from hclust.core.agglomerative_algorithm import (
    AverageLinkageAlgorithm,
    as_square_matrix,
    leaf_order,
)
from hclust.core.cancellation import ProgressChannel
from hclust.core.distance import compute_distance_matrix
from hclust.utils.error_handling import (
    ClusteringCancelledError,
    ClusteringFailedError,
    InvalidInputError,
)


def _matrix(entries, n):
    """Symmetric matrix from {(i, j): d} with a zero diagonal."""
    matrix = np.zeros((n, n), dtype=np.float32)
    for (i, j), d in entries.items():
        matrix[i, j] = d
        matrix[j, i] = d
    return matrix


@pytest.mark.unit
class TestAverageLinkageAlgorithm:
    """Test suite for the merge loop."""

    def test_init_defaults(self):
        """Test default progress interval."""
        algorithm = AverageLinkageAlgorithm()
        assert algorithm.progress_interval == 100
        assert algorithm.running is False

    def test_two_samples(self):
        """Test that two samples merge once at their distance."""
        result = AverageLinkageAlgorithm().run(_matrix({(0, 1): 2.0}, 2))

        assert result.merges == [(0, 1)]
        np.testing.assert_allclose(result.heights, [2.0])
        assert result.order == [0, 1]

    def test_empty_input(self):
        """Test that zero samples yields no merges."""
        result = AverageLinkageAlgorithm().run(np.zeros((0, 0), dtype=np.float32))

        assert result.merges == []
        assert len(result.heights) == 0
        assert result.order == []

    def test_single_sample(self):
        """Test that one sample yields no merges and order [0]."""
        result = AverageLinkageAlgorithm().run(np.zeros((1, 1), dtype=np.float32))

        assert result.merges == []
        assert result.order == [0]

    def test_average_update(self, line_points):
        """Test the Lance-Williams average update on 1D points."""
        result = AverageLinkageAlgorithm().run(compute_distance_matrix(line_points))

        assert result.merges == [(0, 1), (2, 4), (3, 5)]
        np.testing.assert_allclose(result.heights, [1.0, 2.5, 17.0 / 3.0], rtol=1e-6)
        assert result.order == [3, 2, 0, 1]

    def test_merge_records_smaller_id_first(self, line_points):
        """Test that every merge is recorded as (smaller id, larger id)."""
        result = AverageLinkageAlgorithm().run(compute_distance_matrix(line_points))
        assert all(a < b for a, b in result.merges)

    def test_heights_non_decreasing(self, small_vectors):
        """Test that average linkage never produces inversions."""
        result = AverageLinkageAlgorithm().run(compute_distance_matrix(small_vectors))

        assert result.n_merges == len(small_vectors) - 1
        assert np.all(np.diff(result.heights) >= -1e-6)

    def test_tie_breaks_on_lowest_id(self):
        """Test that equal distances go to the lexicographically smallest pair."""
        matrix = _matrix(
            {(0, 1): 5, (0, 2): 5, (0, 3): 1, (1, 2): 1, (1, 3): 5, (2, 3): 5},
            4,
        )
        result = AverageLinkageAlgorithm().run(matrix)

        assert result.merges[0] == (0, 3)
        assert result.merges[1] == (1, 2)

    def test_equidistant_points(self):
        """Test merge order when every distance is equal."""
        matrix = _matrix({(0, 1): 1, (0, 2): 1, (1, 2): 1}, 3)
        result = AverageLinkageAlgorithm().run(matrix)

        assert result.merges == [(0, 1), (2, 3)]
        np.testing.assert_allclose(result.heights, [1.0, 1.0])

    def test_nan_ranks_after_infinity(self):
        """Test that NaN distances are chosen only after +inf."""
        matrix = _matrix({(0, 1): np.nan, (0, 2): np.inf, (1, 2): np.nan}, 3)
        result = AverageLinkageAlgorithm().run(matrix)

        assert result.merges[0] == (0, 2)
        assert np.isinf(result.heights[0])

    def test_nan_heights_propagate(self):
        """Test that NaN input produces NaN heights rather than an error."""
        matrix = _matrix({(0, 1): np.nan, (0, 2): np.inf, (1, 2): 5.0}, 3)
        result = AverageLinkageAlgorithm().run(matrix)

        assert result.merges == [(1, 2), (0, 3)]
        assert result.heights[0] == pytest.approx(5.0)
        assert np.isnan(result.heights[1])

    def test_accepts_flat_buffer(self, line_points):
        """Test that a flat n*n buffer is accepted."""
        flat = compute_distance_matrix(line_points).reshape(-1)
        result = AverageLinkageAlgorithm().run(flat)
        assert result.merges == [(0, 1), (2, 4), (3, 5)]

    def test_iter_merges(self, line_points):
        """Test Merge triples."""
        result = AverageLinkageAlgorithm().run(compute_distance_matrix(line_points))
        first = next(result.iter_merges())

        assert (first.id_a, first.id_b) == (0, 1)
        assert first.height == pytest.approx(1.0)


@pytest.mark.unit
class TestCancellationAndProgress:
    """Test suite for the progress channel as seen by the merge loop."""

    def test_cancel_on_first_poll(self, line_points):
        """Test that cancellation before the first merge aborts the run."""
        algorithm = AverageLinkageAlgorithm()
        channel = ProgressChannel(check_cancelled=lambda: True)

        with pytest.raises(ClusteringCancelledError) as exc_info:
            algorithm.run(compute_distance_matrix(line_points), channel)

        assert exc_info.value.message == "Clustering aborted"
        assert channel.poll_count == 1
        assert algorithm.running is False

    def test_cancel_mid_run(self, small_vectors):
        """Test cancellation observed at a later iteration boundary."""
        calls = {"count": 0}

        def check():
            calls["count"] += 1
            return calls["count"] >= 4

        with pytest.raises(ClusteringCancelledError):
            AverageLinkageAlgorithm().run(
                compute_distance_matrix(small_vectors),
                ProgressChannel(check_cancelled=check),
            )

        assert calls["count"] == 4

    def test_polls_once_per_merge(self, small_vectors):
        """Test that the channel is polled exactly n - 1 times."""
        channel = ProgressChannel(check_cancelled=Mock(return_value=False))
        AverageLinkageAlgorithm().run(compute_distance_matrix(small_vectors), channel)

        assert channel.poll_count == len(small_vectors) - 1
        assert channel.check_cancelled.call_count == len(small_vectors) - 1

    def test_no_poll_for_single_sample(self):
        """Test that a run without merges never polls."""
        check = Mock(return_value=True)
        result = AverageLinkageAlgorithm().run(
            np.zeros((1, 1), dtype=np.float32),
            ProgressChannel(check_cancelled=check),
        )

        assert result.order == [0]
        check.assert_not_called()

    def test_failing_cancel_check(self, line_points):
        """Test that a throwing cancellation query is an engine failure."""
        channel = ProgressChannel(check_cancelled=Mock(side_effect=RuntimeError("boom")))

        with pytest.raises(ClusteringFailedError):
            AverageLinkageAlgorithm().run(compute_distance_matrix(line_points), channel)

    def test_progress_messages(self, line_points):
        """Test start and remaining-merge messages."""
        messages = []
        algorithm = AverageLinkageAlgorithm(EngineSettings(progress_interval=1))
        algorithm.run(
            compute_distance_matrix(line_points),
            ProgressChannel(report_progress=messages.append),
        )

        assert messages == [
            "Starting average-linkage clustering of 4 samples",
            "2 merges remaining",
            "1 merges remaining",
            "0 merges remaining",
        ]

    def test_progress_throttled_by_interval(self, line_points):
        """Test that a large interval only reports at the end."""
        messages = []
        AverageLinkageAlgorithm().run(
            compute_distance_matrix(line_points),
            ProgressChannel(report_progress=messages.append),
        )

        assert messages == [
            "Starting average-linkage clustering of 4 samples",
            "0 merges remaining",
        ]

    def test_failing_progress_callback_ignored(self, line_points):
        """Test that progress callback errors do not abort the run."""
        channel = ProgressChannel(report_progress=Mock(side_effect=ValueError("display gone")))
        result = AverageLinkageAlgorithm().run(compute_distance_matrix(line_points), channel)

        assert result.n_merges == 3


@pytest.mark.unit
class TestHelpers:
    """Test suite for module helpers."""

    def test_leaf_order(self):
        assert leaf_order([(0, 1), (2, 4), (3, 5)], 4) == [3, 2, 0, 1]

    def test_leaf_order_trivial(self):
        assert leaf_order([], 0) == []
        assert leaf_order([], 1) == [0]

    def test_as_square_matrix_rejects_non_square(self):
        with pytest.raises(InvalidInputError):
            as_square_matrix(np.zeros(5))
        with pytest.raises(InvalidInputError):
            as_square_matrix(np.zeros((2, 3)))
