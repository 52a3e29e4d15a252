import argparse
import os
import sys

import wandb
from tqdm import tqdm

from evaluation import TaggingReport
from features import FeatureIndex
from instances import CacheCorruptedError, InstanceCache, InstanceReader, build_dictionaries
from model_io import load_model, save_model
from perceptron import Tagger, Trainer
from viterbi import MAX_WORDS

CACHE_FILE = ".cache"


def _train_one_pass(trainer, instances, desc, cache_writer=None):
    """ Feeds one pass of instances to the trainer. Returns (instances, tokens, token mistakes). """
    num_instances = 0
    num_tokens = 0
    num_mistakes = 0
    for instance in tqdm(instances, desc=desc, leave=False):
        decoded_tags = trainer.learn_from_one_instance(instance.words_with_features, instance.labelled_tags)
        num_mistakes += sum(1 for d, l in zip(decoded_tags, instance.labelled_tags) if d != l)
        num_tokens += len(instance)
        num_instances += 1
        if cache_writer is not None:
            cache_writer.write(instance)
    return num_instances, num_tokens, num_mistakes


def train(input_file, model_dir, num_iterations=1, hash_bits=None, wandb_project=None):
    """Trains an averaged perceptron tagger and saves it to model_dir."""
    print(f"Starting perceptron training...")
    print(f"Input: {input_file}, Model directory: {model_dir}")
    print(f"Passes: {num_iterations}, Feature hashing: {'%d bits' % hash_bits if hash_bits else 'off'}")

    if num_iterations < 1:
        raise ValueError(f"num_iterations must be at least 1, got {num_iterations}")

    print("Building tag and feature dictionaries...")
    tag_to_idx, feature_to_idx = build_dictionaries(input_file, use_hashing=hash_bits is not None)
    feature_index = FeatureIndex(feature_to_idx, hash_bits)
    num_tags = len(tag_to_idx)
    num_features = feature_index.num_features
    print(f"Number of tags: {num_tags}, number of features: {num_features}")

    if wandb_project:
        wandb.init(
            project=wandb_project,
            config={
                "input_file": input_file,
                "model_dir": model_dir,
                "num_iterations": num_iterations,
                "hash_bits": hash_bits,
                "num_tags": num_tags,
                "num_features": num_features,
                "max_words": MAX_WORDS,
            }
        )

    try:
        trainer = Trainer(num_tags, num_features)
        os.makedirs(model_dir, exist_ok=True)
        cache = InstanceCache(os.path.join(model_dir, CACHE_FILE))

        for iteration in tqdm(range(num_iterations), desc="Passes"):
            desc = f"Pass {iteration + 1}/{num_iterations}"
            updates_before = trainer.t
            if iteration == 0:
                reader = InstanceReader(input_file, tag_to_idx, feature_index)
                if num_iterations > 1:
                    with cache.writer() as cache_writer:
                        stats = _train_one_pass(trainer, reader, desc, cache_writer)
                else:
                    stats = _train_one_pass(trainer, reader, desc)
                if reader.num_skipped:
                    tqdm.write(f"Skipped {reader.num_skipped} sequences longer than {MAX_WORDS} words")
            else:
                stats = _train_one_pass(trainer, cache.read(), desc)

            num_instances, num_tokens, num_mistakes = stats
            mistake_rate = num_mistakes / num_tokens if num_tokens else 0.0
            tqdm.write(f"{desc} completed. Instances: {num_instances}, Token mistake rate: {mistake_rate:.4f}")
            if wandb_project:
                wandb.log({
                    "pass": iteration + 1,
                    "instances": num_instances,
                    "token_mistake_rate": mistake_rate,
                    "updates": trainer.t - updates_before,
                })

        model = trainer.get_model()
        save_model(model_dir, model, tag_to_idx, feature_to_idx)
        print(f"Training complete. Model saved to {model_dir}")
    finally:
        # Close the run even when a pass fails
        if wandb_project:
            wandb.finish()
    return model


def tag(model_dir, input_file, output_file, hash_bits=None):
    """Tags every sequence of input_file, writes the predicted tags and returns the evaluation report."""
    print(f"Running tagging...")
    print(f"Model directory: {model_dir}, Input: {input_file}, Output: {output_file}")

    model, tag_to_idx, feature_to_idx = load_model(model_dir, hash_bits)
    feature_index = FeatureIndex(feature_to_idx, hash_bits)
    idx_to_tag = {i: t for t, i in tag_to_idx.items()}

    tagger = Tagger(model)
    report = TaggingReport(idx_to_tag)
    reader = InstanceReader(input_file, tag_to_idx, feature_index)

    with open(output_file, 'w', encoding='utf-8') as f_out:
        for instance in tqdm(reader, desc="Tagging sequences"):
            predicted_tags = tagger.label(instance.words_with_features)
            for tag_idx in predicted_tags:
                f_out.write(f"{idx_to_tag[tag_idx]}\n")
            f_out.write("\n")  # Sequence separator
            report.add(instance.labelled_tags, predicted_tags)

    if reader.num_skipped:
        print(f"Skipped {reader.num_skipped} sequences longer than {MAX_WORDS} words")
    for line in report.format_lines():
        print(line)
    print(f"Tagging complete. Output saved to {output_file}")
    return report


def main(argv=None):
    parser = argparse.ArgumentParser(description="Averaged perceptron sequence tagger")
    subparsers = parser.add_subparsers(dest="command", required=True)

    train_parser = subparsers.add_parser("train", help="Train a tagger")
    train_parser.add_argument("--data", required=True, help="Training file, one 'TAG feature ...' line per token")
    train_parser.add_argument("--model", required=True, help="Directory to save the model in")
    train_parser.add_argument("--iterations", type=int, default=1, help="Number of passes over the training data")
    train_parser.add_argument("--hash-bits", type=int, default=None,
                              help="Use feature hashing into 2**BITS buckets instead of a feature dictionary")
    train_parser.add_argument("--wandb-project", default=None, help="Log the run to this wandb project")

    tag_parser = subparsers.add_parser("tag", help="Tag a file with a trained model")
    tag_parser.add_argument("--data", required=True, help="File to tag, same format as the training file")
    tag_parser.add_argument("--model", required=True, help="Directory of the trained model")
    tag_parser.add_argument("--output", required=True, help="Path to write the predicted tags to")
    tag_parser.add_argument("--hash-bits", type=int, default=None,
                            help="Number of hash bits the model was trained with")

    args = parser.parse_args(argv)

    # Malformed lines, unknown tags and bad model directories are all ValueErrors
    try:
        if args.command == "train":
            train(args.data, args.model, num_iterations=args.iterations, hash_bits=args.hash_bits,
                  wandb_project=args.wandb_project)
        elif args.command == "tag":
            tag(args.model, args.data, args.output, hash_bits=args.hash_bits)
    except (ValueError, CacheCorruptedError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
