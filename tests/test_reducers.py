"""
Tests for the PCA, t-SNE and UMAP reducers.
"""
import numpy as np
import pytest

from chemspace.dimensionality_reduction import (
    PCAReducer,
    ReducerState,
    TSNEReducer,
    UMAPReducer,
    get_explained_variance,
    global_reducer_registry,
)
from chemspace.dimensionality_reduction.reducers.base import as_feature_matrix
from chemspace.dimensionality_reduction.reducers.tsne import (
    joint_probabilities,
    rescale_embedding,
)
from chemspace.errors import InvalidInputError, NumericInstabilityError, ParameterOutOfRangeError


class TestRegistry:
    def test_default_methods_registered(self):
        assert {"pca", "tsne", "umap"} <= set(global_reducer_registry.available_methods())

    def test_create_is_case_insensitive(self):
        assert isinstance(global_reducer_registry.create("PCA"), PCAReducer)

    def test_unknown_method_lists_available(self):
        with pytest.raises(ParameterOutOfRangeError) as excinfo:
            global_reducer_registry.create("isomap")
        assert "umap" in str(excinfo.value)

    def test_resolve_normalises_case(self):
        assert global_reducer_registry.resolve("UMAP") == "umap"


class TestFeatureMatrix:
    def test_read_only_copy(self):
        source = np.ones((3, 2))
        matrix = as_feature_matrix(source)
        assert not matrix.flags.writeable
        source[0, 0] = 5.0
        assert matrix[0, 0] == 1.0

    def test_rejects_non_finite(self):
        with pytest.raises(InvalidInputError):
            as_feature_matrix([[0.0, np.nan]])

    def test_rejects_wrong_rank(self):
        with pytest.raises(InvalidInputError):
            as_feature_matrix([1.0, 2.0])

    def test_empty_list_is_empty_matrix(self):
        assert as_feature_matrix([]).shape == (0, 0)


class TestPCAReducer:
    def test_identical_rows_project_to_origin(self):
        """Centred data is all zero, so every row lands on (0, 0)."""
        features = np.tile([1.0, 0.0, 1.0, 1.0], (12, 1))
        embedding, _ = PCAReducer().fit_transform(features)
        assert embedding.shape == (12, 2)
        np.testing.assert_array_equal(embedding, np.zeros((12, 2)))

    def test_recovers_dominant_axis(self):
        t = np.linspace(-5, 5, 40)
        features = np.column_stack([t, 0.01 * np.sin(t), np.zeros_like(t)])
        embedding, summary = PCAReducer().fit_transform(features)
        assert summary["explained_variance_ratio"][0] > 0.99
        np.testing.assert_allclose(np.abs(embedding[:, 0]), np.abs(t - t.mean()), atol=1e-2)

    def test_deterministic_signs(self, fingerprints):
        first, _ = PCAReducer().fit_transform(fingerprints)
        second, _ = PCAReducer().fit_transform(fingerprints.copy())
        np.testing.assert_array_equal(first, second)

    def test_single_feature_column(self):
        embedding, _ = PCAReducer().fit_transform(np.arange(5.0).reshape(-1, 1))
        assert embedding.shape == (5, 2)
        np.testing.assert_array_equal(embedding[:, 1], np.zeros(5))

    def test_progress_events(self, fingerprints):
        events = []
        PCAReducer().fit_transform(fingerprints, progress_callback=events.append)
        assert [(e.current, e.total) for e in events] == [(0, 1), (1, 1)]

    def test_explained_variance_helper(self, fingerprints):
        ratios = get_explained_variance(fingerprints)
        assert len(ratios) == 2
        assert ratios[0] >= ratios[1] >= 0.0


class TestJointProbabilities:
    def test_symmetric_and_normalised(self, fingerprints):
        diff = fingerprints[:, None, :] - fingerprints[None, :, :]
        distances = np.sum(diff ** 2, axis=-1)
        P = joint_probabilities(distances, perplexity=10.0)
        np.testing.assert_allclose(P, P.T)
        np.testing.assert_allclose(P.sum(), 1.0, rtol=1e-6)
        assert np.all(np.diag(P) == 0.0)

    def test_rescale_embedding(self):
        scaled = rescale_embedding(np.array([[0.0, 3.0], [2.0, 3.0], [4.0, 3.0]]))
        np.testing.assert_allclose(scaled[:, 0], [-1.0, 0.0, 1.0])
        np.testing.assert_allclose(scaled[:, 1], [0.0, 0.0, 0.0])


class TestTSNEReducer:
    def test_state_machine(self, fingerprints):
        reducer = TSNEReducer(perplexity=5.0, iterations=25, random_state=0)
        assert reducer.state is ReducerState.UNINITIALIZED
        reducer.initialize(fingerprints)
        assert reducer.state is ReducerState.INITIALIZED

        first = reducer.step()
        assert (first.stage, first.current, first.total) == ("tsne", 10, 25)
        assert reducer.state is ReducerState.RUNNING
        with pytest.raises(RuntimeError):
            reducer.result()

        remaining = [event.current for event in reducer.iter_steps()]
        assert remaining == [20, 25]
        assert reducer.is_done
        embedding, summary = reducer.result()
        assert embedding.shape == (60, 2)
        assert summary["n_iter"] == 25

    def test_cannot_reinitialise_or_step_when_done(self, fingerprints):
        reducer = TSNEReducer(perplexity=5.0, iterations=10, random_state=0)
        reducer.initialize(fingerprints)
        list(reducer.iter_steps())
        with pytest.raises(RuntimeError):
            reducer.step()
        with pytest.raises(RuntimeError):
            reducer.initialize(fingerprints)

    def test_embedding_rescaled_to_unit_box(self, fingerprints):
        embedding, _ = TSNEReducer(perplexity=5.0, iterations=50, random_state=0).fit_transform(
            fingerprints
        )
        np.testing.assert_allclose(embedding.min(axis=0), [-1.0, -1.0])
        np.testing.assert_allclose(embedding.max(axis=0), [1.0, 1.0])

    def test_seed_is_reproducible(self, fingerprints):
        first, _ = TSNEReducer(perplexity=5.0, iterations=30, random_state=7).fit_transform(
            fingerprints
        )
        second, _ = TSNEReducer(perplexity=5.0, iterations=30, random_state=7).fit_transform(
            fingerprints
        )
        np.testing.assert_allclose(first, second)

    def test_perplexity_clamped_for_small_input(self):
        features = np.random.RandomState(0).rand(10, 4)
        embedding, summary = TSNEReducer(
            perplexity=30.0, iterations=20, random_state=0
        ).fit_transform(features)
        assert summary["computed_perplexity"] == 3.0
        assert np.all(np.isfinite(embedding))

    def test_separates_clusters(self, two_blobs):
        embedding, _ = TSNEReducer(perplexity=5.0, iterations=250, random_state=0).fit_transform(
            two_blobs
        )
        left, right = embedding[:20].mean(axis=0), embedding[20:].mean(axis=0)
        spread = max(embedding[:20].std(axis=0).max(), embedding[20:].std(axis=0).max())
        assert np.linalg.norm(left - right) > 2 * spread

    def test_non_finite_gradient_raises(self, fingerprints, monkeypatch):
        def broken_gradient(self, P, Y, exaggeration):
            return np.full_like(Y, np.nan), P

        monkeypatch.setattr(TSNEReducer, "_kl_gradient", broken_gradient)
        with pytest.raises(NumericInstabilityError) as excinfo:
            TSNEReducer(perplexity=5.0, iterations=30, random_state=0).fit_transform(fingerprints)
        assert excinfo.value.stage == "tsne"
        assert excinfo.value.iteration == 1


class TestUMAPReducer:
    def test_one_step_per_epoch(self, fingerprints):
        events = []
        embedding, summary = UMAPReducer(n_neighbors=7, n_epochs=15, random_state=0).fit_transform(
            fingerprints, progress_callback=events.append
        )
        assert [e.current for e in events] == list(range(1, 16))
        assert embedding.shape == (60, 2)
        assert summary["n_epochs"] == 15
        assert summary["n_edges"] > 0

    def test_seed_is_reproducible(self, fingerprints):
        first, _ = UMAPReducer(n_neighbors=7, n_epochs=20, random_state=3).fit_transform(
            fingerprints
        )
        second, _ = UMAPReducer(n_neighbors=7, n_epochs=20, random_state=3).fit_transform(
            fingerprints
        )
        np.testing.assert_allclose(first, second)

    def test_neighbourhood_shrinks_for_small_input(self):
        features = np.random.RandomState(0).rand(6, 4)
        embedding, summary = UMAPReducer(n_neighbors=15, n_epochs=10, random_state=0).fit_transform(
            features
        )
        assert summary["n_neighbors"] == 5
        assert np.all(np.isfinite(embedding))

    def test_non_finite_embedding_raises(self, fingerprints, monkeypatch):
        def broken_attraction(self, diff, sq_dist):
            return np.full_like(diff, np.nan)

        monkeypatch.setattr(UMAPReducer, "_attraction", broken_attraction)
        with pytest.raises(NumericInstabilityError) as excinfo:
            UMAPReducer(n_neighbors=7, n_epochs=15, random_state=0).fit_transform(fingerprints)
        assert excinfo.value.stage == "umap"
        assert excinfo.value.iteration == 1


@pytest.mark.parametrize(
    "reducer",
    [
        lambda: PCAReducer(),
        lambda: TSNEReducer(perplexity=5.0, iterations=10, random_state=0),
        lambda: UMAPReducer(n_neighbors=5, n_epochs=5, random_state=0),
    ],
    ids=["pca", "tsne", "umap"],
)
class TestTrivialInputs:
    def test_empty_input(self, reducer):
        embedding, _ = reducer().fit_transform(np.zeros((0, 4)))
        assert embedding.shape == (0, 2)

    def test_single_row_sits_at_origin(self, reducer):
        embedding, _ = reducer().fit_transform(np.ones((1, 4)))
        np.testing.assert_array_equal(embedding, [[0.0, 0.0]])

    def test_two_rows(self, reducer):
        embedding, _ = reducer().fit_transform(np.array([[0.0, 1.0], [1.0, 0.0]]))
        assert embedding.shape == (2, 2)
        assert np.all(np.isfinite(embedding))

    def test_single_row_reports_completion(self, reducer):
        events = []
        reducer().fit_transform(np.ones((1, 4)), progress_callback=events.append)
        assert events
        assert events[-1].current == events[-1].total
