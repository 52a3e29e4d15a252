class TaggingReport:
    """ Per-tag precision/recall counts and exact sequence match accuracy. """
    def __init__(self, idx_to_tag):
        self.idx_to_tag = idx_to_tag
        num_tags = len(idx_to_tag)
        self.model_count = [0] * num_tags
        self.correct = [0] * num_tags
        self.gold_count = [0] * num_tags
        self.instance_correct = 0
        self.instance_count = 0

    def add(self, gold_tags, predicted_tags):
        all_correct = True
        for gold, predicted in zip(gold_tags, predicted_tags):
            self.gold_count[gold] += 1
            self.model_count[predicted] += 1
            if gold == predicted:
                self.correct[gold] += 1
            else:
                all_correct = False
        if all_correct:
            self.instance_correct += 1
        self.instance_count += 1

    def precision(self, tag_idx):
        return self.correct[tag_idx] / self.model_count[tag_idx] if self.model_count[tag_idx] else 0.0

    def recall(self, tag_idx):
        return self.correct[tag_idx] / self.gold_count[tag_idx] if self.gold_count[tag_idx] else 0.0

    @property
    def accuracy(self):
        return self.instance_correct / self.instance_count if self.instance_count else 0.0

    def format_lines(self):
        """Rows of 'tag model correct gold precision recall', then 'correct total accuracy'."""
        lines = []
        for tag_idx in range(len(self.idx_to_tag)):
            lines.append("\t".join([
                self.idx_to_tag[tag_idx],
                str(self.model_count[tag_idx]),
                str(self.correct[tag_idx]),
                str(self.gold_count[tag_idx]),
                f"{self.precision(tag_idx):.4f}",
                f"{self.recall(tag_idx):.4f}",
            ]))
        lines.append(f"{self.instance_correct}\t{self.instance_count}\t{self.accuracy:.4f}")
        return lines
