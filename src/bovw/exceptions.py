#Code by Christopher Kaelin, 2025
# This code is licensed under the MIT License - see the LICENSE file for details.
'''
Errors raised by the BoVW pipeline.
'''

__all__ = ['BoFError', 'ConfigError', 'ManifestMismatch', 'ExtractionFailure', 'DescriptorLengthMismatch',
           'ClusteringFailure', 'InfeasibleParameters', 'NoFeasibleCodebook', 'NotBuilt', 'NotTrained',
           'EmptyCollection', 'StaleHistogram']


class BoFError(Exception):
    pass


class ConfigError(BoFError):
    pass


class ManifestMismatch(BoFError):
    '''Split sizes of a class manifest do not fit its list of images.'''


class ExtractionFailure(BoFError):
    '''The image could not be read or described.'''
    def __init__(self, path, reason='could not be read'):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class DescriptorLengthMismatch(BoFError):
    pass


class ClusteringFailure(BoFError):
    '''The clusterer could not produce K centroids from the given vectors.'''


class InfeasibleParameters(BoFError):
    '''Classifier training failed with the configured parameters.'''


class NoFeasibleCodebook(BoFError):
    '''Every iteration of the dictionary search failed.'''


class NotBuilt(BoFError):
    pass


class NotTrained(BoFError):
    pass


class EmptyCollection(BoFError):
    pass


class StaleHistogram(BoFError):
    '''A histogram was built against a codebook of a different size, or not built at all.'''
