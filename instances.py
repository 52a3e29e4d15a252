import gzip
import pickle
from contextlib import contextmanager

from features import resolve_gold_tag
from viterbi import MAX_WORDS

# Written after the last cached instance, a cache without it was cut short
END_OF_CACHE = "<END_OF_CACHE>"


class MalformedLineError(ValueError):
    """ A line of the data file does not have the 'TAG feature [feature ...]' structure. """
    def __init__(self, path, line_number, line, reason):
        self.path = path
        self.line_number = line_number
        self.line = line
        super().__init__(f"{path}:{line_number}: {reason}: {line!r}")


class CacheCorruptedError(RuntimeError):
    pass


class Instance:
    """ One sequence: active feature ids per word and the gold tag ids. """
    def __init__(self, words_with_features, labelled_tags):
        self.words_with_features = words_with_features
        self.labelled_tags = labelled_tags

    def __len__(self):
        return len(self.words_with_features)


def parse_line(line, path, line_number):
    """Splits a non-blank data line into its tag and feature names."""
    line = line.rstrip('\r\n')
    if line[:1].isspace():
        raise MalformedLineError(path, line_number, line, "missing tag column")
    parts = line.split()
    if len(parts) < 2:
        raise MalformedLineError(path, line_number, line, "expected a tag followed by at least one feature")
    return parts[0], parts[1:]


def read_sequences(input_path):
    """ Yields each sequence of the data file as a list of (tag, feature_names) tuples. """
    current_sequence = []
    with open(input_path, 'r', encoding='utf-8') as f:
        for line_number, line in enumerate(f, start=1):
            if not line.strip():
                if current_sequence:
                    yield current_sequence
                    current_sequence = []
                continue
            current_sequence.append(parse_line(line, input_path, line_number))
    if current_sequence:  # Last sequence when the file doesn't end with a blank line
        yield current_sequence


def build_dictionaries(input_path, use_hashing=False):
    """ Scans a training file and assigns tag ids (and feature ids) by first appearance. """
    tag_to_idx = {}
    feature_to_idx = None if use_hashing else {}

    for sequence in read_sequences(input_path):
        for tag, feature_names in sequence:
            if tag not in tag_to_idx:
                tag_to_idx[tag] = len(tag_to_idx)
            if feature_to_idx is not None:
                for name in feature_names:
                    if name not in feature_to_idx:
                        feature_to_idx[name] = len(feature_to_idx)

    return tag_to_idx, feature_to_idx


class InstanceReader:
    """
    Turns a data file into Instances using a tag map and a FeatureIndex.
    Sequences longer than max_words are skipped entirely and counted in num_skipped.
    """
    def __init__(self, input_path, tag_to_idx, feature_index, max_words=MAX_WORDS):
        self.input_path = input_path
        self.tag_to_idx = tag_to_idx
        self.feature_index = feature_index
        self.max_words = max_words
        self.num_read = 0
        self.num_skipped = 0

    def __iter__(self):
        self.num_read = 0
        self.num_skipped = 0
        for sequence in read_sequences(self.input_path):
            if len(sequence) > self.max_words:
                self.num_skipped += 1
                continue
            words_with_features = [self.feature_index.lookup(names) for _, names in sequence]
            labelled_tags = [resolve_gold_tag(tag, self.tag_to_idx) for tag, _ in sequence]
            self.num_read += 1
            yield Instance(words_with_features, labelled_tags)


class _CacheWriter:
    def __init__(self, stream):
        self.stream = stream
        self.count = 0

    def write(self, instance):
        pickle.dump(instance, self.stream, protocol=pickle.HIGHEST_PROTOCOL)
        self.count += 1


class InstanceCache:
    """
    Gzip-compressed stream of pickled Instances, so later training passes don't
    have to re-read and re-tokenize the data file.
    """
    def __init__(self, path):
        self.path = path

    @contextmanager
    def writer(self):
        with gzip.open(self.path, 'wb') as f:
            cache_writer = _CacheWriter(f)
            yield cache_writer
            pickle.dump(END_OF_CACHE, f, protocol=pickle.HIGHEST_PROTOCOL)

    def read(self):
        """Yields the cached instances in the order they were written."""
        try:
            f = gzip.open(self.path, 'rb')
        except OSError as e:
            raise CacheCorruptedError(f"Training cache {self.path} could not be opened: {e}") from e
        with f:
            position = 0
            while True:
                try:
                    record = pickle.load(f)
                except EOFError:
                    raise CacheCorruptedError(
                        f"Training cache {self.path} ends after {position} instances without an end marker")
                except Exception as e:
                    # Bad gzip data, broken opcode streams and unknown globals all end up here
                    raise CacheCorruptedError(
                        f"Training cache {self.path} could not be read at record {position}: {e}") from e
                if isinstance(record, str) and record == END_OF_CACHE:
                    return
                if not isinstance(record, Instance):
                    raise CacheCorruptedError(
                        f"Training cache {self.path} holds a {type(record).__name__} at record {position}")
                yield record
                position += 1
