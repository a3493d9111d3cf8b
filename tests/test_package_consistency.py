"""
Package consistency tests.

Verify that the public symbols are importable from the package and that the
sub-package re-exports are the same objects as the module definitions.
"""
import pytest


class TestPackageImports:
    """Verify all expected symbols are importable from package."""

    def test_top_level(self):
        import aneuhmm
        assert aneuhmm.__version__
        assert callable(aneuhmm.fit_hmm)
        assert callable(aneuhmm.load_model)
        assert issubclass(aneuhmm.ConfigurationError, ValueError)

    def test_core_imports(self):
        from aneuhmm.core import (
            CopyNumberHMM, EmissionModel, HMMFitter, Model, BivariateModel,
            SegmentationConfig, StateSet, fit_hmm, validate_bins,
        )
        assert callable(fit_hmm)
        assert callable(validate_bins)

    def test_inference_imports(self):
        from aneuhmm.inference import (
            decode, fit_bivariate, find_breakpoints, refine_breakpoint,
            get_sce_coordinates, fit_sample, fit_samples,
        )
        assert callable(decode)
        assert callable(fit_samples)

    def test_population_imports(self):
        from aneuhmm.population import cluster_samples, consensus_template, detect_hotspots
        assert callable(detect_hotspots)
        assert callable(cluster_samples)

    def test_cli_entry_points(self):
        from aneuhmm.cli import fit, hotspots, cluster
        for module in (fit, hotspots, cluster):
            assert callable(module.main)


class TestReexportsAreIdentical:
    def test_fit_hmm(self):
        import aneuhmm
        from aneuhmm.core.hmm import fit_hmm
        assert aneuhmm.fit_hmm is fit_hmm

    def test_decode(self):
        from aneuhmm.inference import decode
        from aneuhmm.inference.decoder import decode as decode_module
        assert decode is decode_module


class TestModelVariants:
    """Univariate and bivariate models share segments(); only bivariate has sce_events()."""

    def test_sce_events_only_on_bivariate(self):
        from aneuhmm.core.data import BivariateModel, Model
        assert hasattr(Model, 'segments')
        assert not hasattr(Model, 'sce_events')
        assert hasattr(BivariateModel, 'sce_events')
