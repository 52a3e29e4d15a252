import torch
from tqdm import tqdm

from viterbi import DecodeBuffers, viterbi_decode

WEIGHT_DTYPE = torch.float32


class Model:
    """ Finalized weights: emission[tag, feature] and transition[tag, previous_tag]. """
    def __init__(self, emission, transition):
        if emission.size(0) != transition.size(0) or transition.size(0) != transition.size(1):
            raise ValueError(
                f"Inconsistent weight shapes: emission {tuple(emission.shape)}, transition {tuple(transition.shape)}")
        self.emission = emission
        self.transition = transition

    @property
    def num_tags(self):
        return self.emission.size(0)

    @property
    def num_features(self):
        return self.emission.size(1)

    @classmethod
    def zeros(cls, num_tags, num_features):
        return cls(torch.zeros((num_tags, num_features), dtype=WEIGHT_DTYPE),
                   torch.zeros((num_tags, num_tags), dtype=WEIGHT_DTYPE))


class Trainer:
    """
    Averaged structured perceptron over a linear-chain model.

    Alongside the live weights w_* the trainer keeps decay counters c_*. Every update of
    +/-1 to a weight at time t adds +/-t to its counter, so the time-averaged weight is
    w - c / t and can be read off at the end without storing weight snapshots.
    """
    def __init__(self, num_tags, num_features):
        self.num_tags = num_tags
        self.num_features = num_features

        self.w_emission = torch.zeros((num_tags, num_features), dtype=WEIGHT_DTYPE)
        self.w_transition = torch.zeros((num_tags, num_tags), dtype=WEIGHT_DTYPE)
        self.c_emission = torch.zeros((num_tags, num_features), dtype=WEIGHT_DTYPE)
        self.c_transition = torch.zeros((num_tags, num_tags), dtype=WEIGHT_DTYPE)

        self.buffers = DecodeBuffers(num_tags)

        # Time counter, advanced once per instance that caused an update
        self.t = 1

        # Running loss report, shown at 1, 2, 4, 8, ... instances
        self.num_seen = 0
        self.show_factor = 1
        self.window_loss = 0.0
        self.window_instances = 0
        self.last_average_loss = None

    def learn_from_one_instance(self, words_with_features, labelled_tags):
        """Decodes one instance with the live weights and applies the perceptron correction."""
        num_words = len(words_with_features)
        if num_words == 0:
            return []

        decoded_tags = viterbi_decode(words_with_features, self.w_emission, self.w_transition,
                                      self.buffers, self.num_tags)

        mistakes = sum(1 for d, l in zip(decoded_tags, labelled_tags) if d != l)
        self._report_loss(mistakes / num_words)

        if mistakes > 0:
            t = self.t
            for i in range(num_words):
                dt = decoded_tags[i]
                lt = labelled_tags[i]

                if dt != lt and words_with_features[i]:
                    features = torch.as_tensor(words_with_features[i], dtype=torch.long)
                    self.w_emission[dt, features] -= 1
                    self.c_emission[dt, features] -= t
                    self.w_emission[lt, features] += 1
                    self.c_emission[lt, features] += t

                if i > 0:
                    dpt = decoded_tags[i - 1]
                    lpt = labelled_tags[i - 1]
                    if dt != lt or dpt != lpt:
                        self.w_transition[dt, dpt] -= 1
                        self.c_transition[dt, dpt] -= t
                        self.w_transition[lt, lpt] += 1
                        self.c_transition[lt, lpt] += t
            self.t += 1

        return decoded_tags

    def _report_loss(self, loss):
        self.num_seen += 1
        self.window_loss += loss
        self.window_instances += 1
        if self.num_seen % self.show_factor == 0:
            self.show_factor *= 2
            self.last_average_loss = self.window_loss / self.window_instances
            tqdm.write(f"Average loss {self.num_seen} = {self.last_average_loss:.6f}")
            self.window_loss = 0.0
            self.window_instances = 0

    def get_model(self):
        """Returns the averaged weights as a new Model. Trainer state is left untouched."""
        denominator = float(max(self.t, 1))
        emission = self.w_emission - self.c_emission / denominator
        transition = self.w_transition - self.c_transition / denominator
        return Model(emission, transition)


class Tagger:
    """ Inference wrapper around a finalized Model with its own decode buffers. """
    def __init__(self, model):
        self.model = model
        self.num_tags = model.num_tags
        self.buffers = DecodeBuffers(self.num_tags)

    def label(self, words_with_features):
        return viterbi_decode(words_with_features, self.model.emission, self.model.transition,
                              self.buffers, self.num_tags)
