import mmh3

# Fixed seed for feature hashing, models trained with hashing depend on it
HASH_SEED = 144
# Tag used for gold labels that the model has never seen
DEFAULT_TAG = "O"


class UnknownTagError(ValueError):
    pass


def hash_feature(name, hash_bits):
    """ Maps a feature name to a bucket in [0, 2**hash_bits) with MurmurHash3 (x86, 32 bit). """
    return mmh3.hash(name.encode('utf-8'), HASH_SEED, signed=False) & ((1 << hash_bits) - 1)


class FeatureIndex:
    """
    Resolves feature names to ids, either through a dictionary built on the training
    data (unknown names are dropped) or through feature hashing (no dictionary needed).
    """
    def __init__(self, feature_map=None, hash_bits=None):
        if (feature_map is None) == (hash_bits is None):
            raise ValueError("FeatureIndex needs exactly one of feature_map or hash_bits")
        if hash_bits is not None and not 0 < hash_bits <= 32:
            raise ValueError(f"hash_bits must be between 1 and 32, got {hash_bits}")
        self.feature_map = feature_map
        self.hash_bits = hash_bits

    @property
    def hashed(self):
        return self.hash_bits is not None

    @property
    def num_features(self):
        if self.hashed:
            return 1 << self.hash_bits
        return len(self.feature_map)

    def lookup(self, names):
        """Returns the distinct feature ids of one token, in order of first occurrence."""
        if self.hashed:
            ids = (hash_feature(name, self.hash_bits) for name in names)
        else:
            ids = (self.feature_map[name] for name in names if name in self.feature_map)
        return list(dict.fromkeys(ids))


def resolve_gold_tag(tag, tag_to_idx):
    """
    Maps a gold tag name to an id. Unseen tags fall back to DEFAULT_TAG, then to the
    first known tag. This only changes the reported scores, never the decoded output.
    """
    if tag in tag_to_idx:
        return tag_to_idx[tag]
    if DEFAULT_TAG in tag_to_idx:
        return tag_to_idx[DEFAULT_TAG]
    if tag_to_idx:
        return min(tag_to_idx.values())
    raise UnknownTagError(f"Cannot map tag '{tag}': the tag dictionary is empty")
