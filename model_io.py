import os

import torch

from perceptron import Model

TAG_DICTIONARY = "tags.txt"
FEATURE_DICTIONARY = "features.txt"
TRANSITION_WEIGHTS = "transitions.txt"
EMISSION_WEIGHTS = "emissions.txt"


def _write_dictionary(path, name_to_idx):
    with open(path, 'w', encoding='utf-8') as f:
        for name, idx in name_to_idx.items():
            f.write(f"{name}\t{idx}\n")


def _read_dictionary(path):
    name_to_idx = {}
    with open(path, 'r', encoding='utf-8') as f:
        for line_number, line in enumerate(f, start=1):
            line = line.rstrip('\r\n')
            if not line:
                continue
            name, sep, idx = line.rpartition('\t')
            if not sep:
                raise ValueError(f"{path}:{line_number}: expected 'name<TAB>id', got {line!r}")
            name_to_idx[name] = int(idx)
    return name_to_idx


def _write_triples(path, weights):
    """ Writes the nonzero entries of a weight matrix as row, column, weight triples. """
    rows, cols = torch.nonzero(weights, as_tuple=True)
    values = weights[rows, cols]
    with open(path, 'w', encoding='utf-8') as f:
        for row, col, value in zip(rows.tolist(), cols.tolist(), values.tolist()):
            # repr keeps enough digits to get the same float32 back
            f.write(f"{row}\t{col}\t{value!r}\n")


def _read_triples(path, weights):
    with open(path, 'r', encoding='utf-8') as f:
        for line_number, line in enumerate(f, start=1):
            parts = line.split()
            if not parts:
                continue
            if len(parts) != 3:
                raise ValueError(f"{path}:{line_number}: expected 'row<TAB>column<TAB>weight', got {line!r}")
            weights[int(parts[0]), int(parts[1])] = float(parts[2])


def save_model(model_dir, model, tag_to_idx, feature_to_idx=None):
    """Saves the tag (and feature) dictionaries and the nonzero weights of a model."""
    os.makedirs(model_dir, exist_ok=True)
    _write_dictionary(os.path.join(model_dir, TAG_DICTIONARY), tag_to_idx)
    if feature_to_idx is not None:
        _write_dictionary(os.path.join(model_dir, FEATURE_DICTIONARY), feature_to_idx)
    _write_triples(os.path.join(model_dir, TRANSITION_WEIGHTS), model.transition)
    _write_triples(os.path.join(model_dir, EMISSION_WEIGHTS), model.emission)


def load_model(model_dir, hash_bits=None):
    """
    Loads a model saved with save_model. Without a feature dictionary on disk the
    feature space is 2**hash_bits, so hash_bits has to match the value used for training.
    Returns (model, tag_to_idx, feature_to_idx); feature_to_idx is None for hashed models.
    """
    tag_to_idx = _read_dictionary(os.path.join(model_dir, TAG_DICTIONARY))

    feature_path = os.path.join(model_dir, FEATURE_DICTIONARY)
    if hash_bits is not None:
        feature_to_idx = None
        num_features = 1 << hash_bits
    elif os.path.exists(feature_path):
        feature_to_idx = _read_dictionary(feature_path)
        num_features = len(feature_to_idx)
    else:
        raise ValueError(f"No {FEATURE_DICTIONARY} in {model_dir}; pass hash_bits for a model trained with hashing")

    model = Model.zeros(len(tag_to_idx), num_features)
    _read_triples(os.path.join(model_dir, TRANSITION_WEIGHTS), model.transition)
    _read_triples(os.path.join(model_dir, EMISSION_WEIGHTS), model.emission)
    return model, tag_to_idx, feature_to_idx
