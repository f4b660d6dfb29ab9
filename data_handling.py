"""Data handling

Functions for data I/O in the experimental pipeline (datasets for subgroup discovery and
experimental results).
"""


import pathlib
from typing import Generator, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import sklearn.model_selection

import sdsearch


TARGET_COLUMN = 'target'  # name of the binary target when a dataset is turned into a table


# Descriptive part and target part of a dataset are saved separately.
def load_dataset(dataset_name: str, directory: pathlib.Path) -> Tuple[pd.DataFrame, pd.Series]:
    X = pd.read_csv(directory / (dataset_name + '_X.csv'))
    y = pd.read_csv(directory / (dataset_name + '_y.csv')).squeeze(axis='columns')
    assert isinstance(y, pd.Series), 'Target needs to be a single column.'
    assert TARGET_COLUMN not in X.columns, f'Column name "{TARGET_COLUMN}" is reserved.'
    return X, y


def save_dataset(X: pd.DataFrame, y: pd.Series, dataset_name: str,
                 directory: pathlib.Path) -> None:
    X.to_csv(directory / (dataset_name + '_X.csv'), index=False)
    y.rename(TARGET_COLUMN).to_csv(directory / (dataset_name + '_y.csv'), index=False)


# List dataset names based on target-values files.
def list_datasets(directory: pathlib.Path) -> Sequence[str]:
    return sorted(file.name.split('_y.')[0] for file in directory.glob('*_y.*'))


def load_dataset_overview(directory: pathlib.Path) -> pd.DataFrame:
    return pd.read_csv(directory / '_dataset_overview.csv')


def save_dataset_overview(dataset_overview: pd.DataFrame, directory: pathlib.Path) -> None:
    dataset_overview.to_csv(directory / '_dataset_overview.csv', index=False)


# Combine descriptive columns and (binarized) target into a table for the search. If a reference
# table is given, its column types are re-used, so conditions found on one split can be evaluated
# on another split even if type inference would differ there.
def create_table(X: pd.DataFrame, y: pd.Series, name: str,
                 reference_table: Optional[sdsearch.Table] = None) -> sdsearch.Table:
    data = X.reset_index(drop=True).assign(**{TARGET_COLUMN: y.reset_index(drop=True) == 1})
    column_types = None
    if reference_table is not None:
        column_types = {column.get_name(): column.get_type()
                        for column in reference_table.get_columns()}
    return sdsearch.Table(data, name=name, column_types=column_types)


# Split a dataset for the experimental pipeline. Return the split indices.
def split_for_pipeline(X: pd.DataFrame, y: pd.Series, n_splits: int = 5)\
        -> Generator[Tuple[np.ndarray, np.ndarray], None, None]:
    splitter = sklearn.model_selection.StratifiedKFold(n_splits=n_splits, shuffle=True,
                                                       random_state=25)
    return splitter.split(X=X, y=y)


# Return the path of the file containing either complete experimental results or only a particular
# combination of dataset, fold, and search setting.
def get_results_file_path(directory: pathlib.Path, dataset_name: Optional[str] = None,
                          split_idx: Optional[int] = None,
                          search_name: Optional[str] = None) -> pathlib.Path:
    if (dataset_name is not None) and (split_idx is not None) and (search_name is not None):
        return directory / (f'{dataset_name}_{split_idx}_{search_name}_results.csv')
    return directory / '_results.csv'


# Load either complete results or only a particular combination of dataset, fold, and search.
def load_results(directory: pathlib.Path, dataset_name: Optional[str] = None,
                 split_idx: Optional[int] = None,
                 search_name: Optional[str] = None) -> pd.DataFrame:
    results_file = get_results_file_path(directory=directory, dataset_name=dataset_name,
                                         split_idx=split_idx, search_name=search_name)
    if results_file.exists():
        return pd.read_csv(results_file)
    # If particular results file does not exist, just grab and merge all results in the directory:
    return pd.concat([pd.read_csv(x) for x in directory.glob('*_results.*')], ignore_index=True)


def save_results(results: pd.DataFrame, directory: pathlib.Path,
                 dataset_name: Optional[str] = None, split_idx: Optional[int] = None,
                 search_name: Optional[str] = None) -> None:
    results_file = get_results_file_path(directory=directory, dataset_name=dataset_name,
                                         split_idx=split_idx, search_name=search_name)
    results.to_csv(results_file, index=False)
