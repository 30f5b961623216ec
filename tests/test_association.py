"""Tests for point-to-detection association."""

import numpy as np
import pytest


@pytest.fixture
def cloud():
    from pcdfuse.sensors import PointCloud
    return PointCloud.from_array(np.array([
        [0.0, 0.0, 5.0],
        [1.0, 0.0, 5.0],
        [2.0, 0.0, 5.0],
        [3.0, 0.0, 5.0],
    ], dtype=np.float32))


def make_projected(cloud, pixels, indices=None):
    from pcdfuse.fusion import ProjectedPoints

    if indices is None:
        indices = np.arange(len(pixels))
    return ProjectedPoints(cloud, indices, np.asarray(pixels, dtype=np.float64), 640, 480)


class TestContainingRects:
    """Tests for the smallest containing rectangle rule."""

    def test_smallest_area_wins(self):
        """A point inside two rectangles goes to the smaller one."""
        from pcdfuse.fusion import containing_rects
        from pcdfuse.sensors import DetectionRect, RectSet

        rects = RectSet([
            DetectionRect(0, 0, 10, 10),   # area 100
            DetectionRect(0, 0, 5, 10),    # area 50
        ])

        np.testing.assert_array_equal(containing_rects([[2, 2]], rects), [1])

    def test_only_containing_rects_compete(self):
        """A smaller rectangle elsewhere does not capture the point."""
        from pcdfuse.fusion import containing_rects
        from pcdfuse.sensors import DetectionRect, RectSet

        rects = RectSet([
            DetectionRect(0, 0, 100, 100),
            DetectionRect(200, 200, 1, 1),
        ])

        np.testing.assert_array_equal(containing_rects([[50, 50]], rects), [0])

    def test_equal_area_tie_goes_to_first(self):
        from pcdfuse.fusion import containing_rects
        from pcdfuse.sensors import DetectionRect, RectSet

        rects = RectSet([
            DetectionRect(0, 0, 10, 10),
            DetectionRect(5, 5, 10, 10),
        ])

        np.testing.assert_array_equal(containing_rects([[7, 7]], rects), [0])

    def test_half_open_edges(self):
        """Right and bottom edges are outside the rectangle."""
        from pcdfuse.fusion import NO_RECT, containing_rects
        from pcdfuse.sensors import DetectionRect, RectSet

        rects = RectSet([DetectionRect(10, 10, 10, 10)])
        pixels = [[10, 10], [19.5, 19.5], [20, 15], [15, 20], [9.99, 15]]

        np.testing.assert_array_equal(
            containing_rects(pixels, rects),
            [0, 0, NO_RECT, NO_RECT, NO_RECT],
        )

    def test_no_rects(self):
        from pcdfuse.fusion import NO_RECT, containing_rects
        from pcdfuse.sensors import RectSet

        np.testing.assert_array_equal(
            containing_rects([[1, 1], [2, 2]], RectSet()),
            [NO_RECT, NO_RECT],
        )

    def test_matches_scalar_rule(self):
        """Vectorised result agrees with checking rectangles one by one."""
        from pcdfuse.fusion import NO_RECT, containing_rects
        from pcdfuse.sensors import DetectionRect, RectSet

        rng = np.random.default_rng(3)
        rects = RectSet([
            DetectionRect(x, y, w, h)
            for x, y, w, h in rng.integers(0, 100, size=(8, 4)) + [0, 0, 1, 1]
        ])
        pixels = rng.uniform(0, 200, size=(300, 2))

        result = containing_rects(pixels, rects)

        for (px, py), index in zip(pixels, result):
            candidates = [i for i, r in enumerate(rects) if r.contains(px, py)]
            if not candidates:
                assert index == NO_RECT
            else:
                areas = [rects[i].area for i in candidates]
                assert index == candidates[int(np.argmin(areas))]


class TestAssociate:
    """Tests for associate()."""

    def test_two_rect_scenario(self, cloud):
        """Point inside both rectangles is associated with the smaller one."""
        from pcdfuse.fusion import associate
        from pcdfuse.sensors import DetectionRect, RectSet

        rects = RectSet([
            DetectionRect(0, 0, 10, 10, class_id="big"),
            DetectionRect(0, 0, 5, 10, class_id="small"),
        ])
        projected = make_projected(cloud, [[2, 2]])

        assocs = associate(projected, rects)

        assert len(assocs) == 1
        assoc = assocs[0]
        assert assoc.is_associated
        assert assoc.rect_ref.index == 1
        assert assoc.rect_ref.rect.class_id == "small"
        assert assoc.point_ref.index == 0
        assert assoc.pixel == (2.0, 2.0)

    def test_unassociated_points_kept(self, cloud):
        """Every projected point yields exactly one Association."""
        from pcdfuse.fusion import associate
        from pcdfuse.sensors import DetectionRect, RectSet

        rects = RectSet([DetectionRect(0, 0, 10, 10)])
        projected = make_projected(cloud, [[5, 5], [100, 100], [300, 300]], indices=[0, 2, 3])

        assocs = associate(projected, rects)

        assert len(assocs) == 3
        assert [a.is_associated for a in assocs] == [True, False, False]
        assert [a.point_ref.index for a in assocs] == [0, 2, 3]
        assert assocs[1].rect_ref is None

    def test_no_rects(self, cloud):
        from pcdfuse.fusion import associate

        assocs = associate(make_projected(cloud, [[5, 5], [6, 6]]))

        assert len(assocs) == 2
        assert len(assocs.associated()) == 0
        assert len(assocs.rects) == 0

    def test_empty_projection(self, cloud):
        from pcdfuse.fusion import ProjectedPoints, associate
        from pcdfuse.sensors import DetectionRect, RectSet

        assocs = associate(ProjectedPoints.empty(cloud, 640, 480), RectSet([DetectionRect(0, 0, 1, 1)]))

        assert len(assocs) == 0
        assert assocs.to_list() == []

    def test_pure(self, cloud):
        """Same inputs, same associations."""
        from pcdfuse.fusion import associate
        from pcdfuse.sensors import DetectionRect, RectSet

        rects = RectSet([DetectionRect(0, 0, 10, 10), DetectionRect(3, 3, 4, 4)])
        projected = make_projected(cloud, [[1, 1], [4, 4], [50, 50]])

        first = associate(projected, rects)
        second = associate(projected, rects)

        np.testing.assert_array_equal(first.rect_indices, second.rect_indices)
        assert first.to_list() == second.to_list()

    def test_shares_cloud_and_rects(self, cloud):
        from pcdfuse.fusion import associate
        from pcdfuse.sensors import DetectionRect, RectSet

        rects = RectSet([DetectionRect(0, 0, 10, 10)])

        assocs = associate(make_projected(cloud, [[1, 1]]), rects)

        assert assocs.cloud is cloud
        assert assocs.rects is rects
        assert assocs[0].point_ref.cloud is cloud
        assert assocs[0].rect_ref.rect_set is rects


class TestAssociations:
    """Tests for the Associations accessors."""

    @pytest.fixture
    def assocs(self, cloud):
        from pcdfuse.fusion import associate
        from pcdfuse.sensors import DetectionRect, RectSet

        rects = RectSet([
            DetectionRect(0, 0, 10, 10, class_id="a"),
            DetectionRect(20, 20, 10, 10, class_id="b"),
        ])
        projected = make_projected(cloud, [[1, 1], [25, 25], [100, 100], [2, 2]])
        return associate(projected, rects)

    def test_associated_and_unassociated(self, assocs):
        assert [a.point_ref.index for a in assocs.associated()] == [0, 1, 3]
        assert [a.point_ref.index for a in assocs.unassociated()] == [2]

    def test_by_rect(self, assocs):
        groups = assocs.by_rect()

        assert set(groups) == {0, 1}
        np.testing.assert_array_equal(groups[0], [0, 3])
        np.testing.assert_array_equal(groups[1], [1])

    def test_read_only(self, assocs):
        with pytest.raises(ValueError):
            assocs.rect_indices[0] = 1

    def test_association_is_frozen(self, assocs):
        import dataclasses

        with pytest.raises(dataclasses.FrozenInstanceError):
            assocs[0].pixel = (0.0, 0.0)

    def test_mismatched_lengths(self, cloud):
        from pcdfuse.fusion import Associations
        from pcdfuse.sensors import RectSet

        with pytest.raises(ValueError):
            Associations(cloud, RectSet(), [0, 1], [[0, 0]], [-1, -1])

    def test_caller_arrays_stay_writable(self, cloud):
        from pcdfuse.fusion import Associations
        from pcdfuse.sensors import RectSet

        point_indices = np.array([0, 1], dtype=np.int64)
        pixels = np.array([[1.0, 1.0], [2.0, 2.0]])
        rect_indices = np.array([-1, -1], dtype=np.int64)

        assocs = Associations(cloud, RectSet(), point_indices, pixels, rect_indices)
        pixels[0, 0] = 5.0
        point_indices[0] = 1
        rect_indices[0] = 0

        assert assocs.pixels[0, 0] == 1.0
        assert assocs.point_indices[0] == 0
        assert assocs.rect_indices[0] == -1
