"""
Training Module.

Offline training of the field classifier from labeled samples.

Components:
    - TrainingSample / TrainingSet: labeled data and file formats
    - TrainingOptions: split, cross-validation and solver settings
    - DataSplitter: stratified partitions and folds
    - ModelTrainer: runs a training and returns a TrainingResult
"""

from .options import TrainingOptions
from .splitter import DataSplitter, SplitResult
from .samples import TrainingSample, TrainingSet, featurize
from .trainer import ModelTrainer, TrainingResult

__all__ = [
    'TrainingOptions',
    'DataSplitter',
    'SplitResult',
    'TrainingSample',
    'TrainingSet',
    'featurize',
    'ModelTrainer',
    'TrainingResult',
]
