import torch

# Longest sequence the decoder will accept. Longer sequences are dropped by the reader.
MAX_WORDS = 200


class DecodeBuffers:
    """ Scratch space for one decoder: score lattice, backpointers and output tag slots. """
    def __init__(self, num_tags, max_words=MAX_WORDS):
        self.num_tags = num_tags
        self.max_words = max_words
        self.lattice = torch.zeros((max_words, num_tags), dtype=torch.float32)
        self.backpointers = torch.zeros((max_words, num_tags), dtype=torch.long)
        self.tags = [0] * max_words


def emission_scores(features, emission):
    """ Sum of emission weights of the active features, for every tag at once. """
    feature_idx = torch.as_tensor(features, dtype=torch.long)
    return emission[:, feature_idx].sum(dim=1)


def viterbi_decode(words_with_features, emission, transition, buffers, num_tags):
    """
    Finds the highest scoring tag sequence for one instance.
    emission is [num_tags, num_features], transition is [num_tags (current), num_tags (previous)].
    Results are written into buffers.tags; the decoded prefix is returned as a list.
    """
    num_words = len(words_with_features)

    # Nothing to decode, leave the output slots as they are
    if num_words == 0 or num_tags == 0:
        return []
    if num_words > buffers.max_words:
        raise ValueError(f"Sequence of {num_words} words exceeds decoder capacity of {buffers.max_words}")

    lattice = buffers.lattice
    backpointers = buffers.backpointers

    # --- Initialization step (w=0) ---
    # The first word is scored on its features only, there is no start tag
    lattice[0, :num_tags] = emission_scores(words_with_features[0], emission)
    backpointers[0, :num_tags] = -1

    # --- Recursion step (w=1 to num_words-1) ---
    for w in range(1, num_words):
        tag_feature_scores = emission_scores(words_with_features[w], emission)

        # candidates[current, previous] = lattice[w-1, previous] + transition[current, previous]
        candidates = lattice[w - 1, :num_tags].unsqueeze(0) + transition
        # torch.max returns the first maximal index, so the lowest previous tag wins ties
        best_scores, best_prev_tags = torch.max(candidates, dim=1)

        lattice[w, :num_tags] = best_scores + tag_feature_scores
        backpointers[w, :num_tags] = best_prev_tags

    # --- Termination step: best tag for the last word ---
    last_tag = int(torch.argmax(lattice[num_words - 1, :num_tags]).item())

    # --- Backtracking ---
    decoded_tags = buffers.tags
    decoded_tags[num_words - 1] = last_tag
    for w in range(num_words - 1, 0, -1):
        decoded_tags[w - 1] = int(backpointers[w, decoded_tags[w]].item())

    return decoded_tags[:num_words]


def sequence_score(words_with_features, tags, emission, transition):
    """Calculates the linear-chain score of a given tag sequence."""
    total_score = 0.0
    for i, features in enumerate(words_with_features):
        for feature in features:
            total_score += float(emission[tags[i], feature])
        if i > 0:
            total_score += float(transition[tags[i], tags[i - 1]])
    return total_score
