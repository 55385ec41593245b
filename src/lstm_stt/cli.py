"""Inspect an exported streaming LSTM transducer.

Loads the encoder/decoder/joiner triple, prints the hyperparameters read from
the model metadata and, with --smoke, runs one step of each sub-model on
silent input.

Examples:
    # All three files from a released model directory
    lstm-stt-inspect --model-dir sherpa-onnx-lstm-en-2023-02-17

    # Explicit files, dumping their metadata
    lstm-stt-inspect --encoder enc.onnx --decoder dec.onnx --joiner join.onnx --debug
"""

import argparse
import logging
import sys

import numpy as np

from lstm_stt.config import ModelConfig
from lstm_stt.constants import (
    DEFAULT_NUM_THREADS,
    DEFAULT_PROVIDER,
    FEATURE_DIM,
    FRAME_SHIFT_MS,
    PROVIDERS,
    SAMPLE_RATE,
)
from lstm_stt.errors import EngineError, ModelConfigError
from lstm_stt.model import LstmTransducerModel

EXIT_CONFIG_ERROR = 1
EXIT_ENGINE_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lstm-stt-inspect",
        description="Load a streaming LSTM transducer and report its hyperparameters",
    )
    parser.add_argument(
        "--model-dir",
        type=str,
        default=None,
        help="Directory containing encoder*.onnx, decoder*.onnx and joiner*.onnx",
    )
    parser.add_argument("--encoder", type=str, default=None, help="Encoder ONNX file")
    parser.add_argument("--decoder", type=str, default=None, help="Decoder ONNX file")
    parser.add_argument("--joiner", type=str, default=None, help="Joiner ONNX file")
    parser.add_argument(
        "--int8",
        action="store_true",
        help="With --model-dir, prefer *.int8.onnx files",
    )
    parser.add_argument(
        "--num-threads",
        type=int,
        default=DEFAULT_NUM_THREADS,
        help=f"Threads per session (default: {DEFAULT_NUM_THREADS})",
    )
    parser.add_argument(
        "--provider",
        choices=sorted(PROVIDERS),
        default=DEFAULT_PROVIDER,
        help=f"Execution provider (default: {DEFAULT_PROVIDER})",
    )
    parser.add_argument(
        "--feature-dim",
        type=int,
        default=FEATURE_DIM,
        help=f"Feature bins per frame for --smoke (default: {FEATURE_DIM})",
    )
    parser.add_argument("--debug", action="store_true", help="Dump model metadata")
    parser.add_argument(
        "--smoke",
        action="store_true",
        help="Run one encoder/decoder/joiner step on silent input",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> ModelConfig:
    options = {"num_threads": args.num_threads, "debug": args.debug, "provider": args.provider}

    if args.model_dir:
        return ModelConfig.from_dir(args.model_dir, prefer_int8=args.int8, **options)

    missing = [name for name in ("encoder", "decoder", "joiner") if not getattr(args, name)]
    if missing:
        flags = ", ".join(f"--{name}" for name in missing)
        raise ModelConfigError(f"missing {flags} (or pass --model-dir)")

    return ModelConfig(encoder=args.encoder, decoder=args.decoder, joiner=args.joiner, **options)


def step_audio(frames: int) -> tuple[int, int]:
    """Audio covered by a number of feature frames, as (samples, milliseconds)."""
    ms = frames * FRAME_SHIFT_MS
    return SAMPLE_RATE * ms // 1000, ms


def report(model: LstmTransducerModel) -> None:
    samples, ms = step_audio(model.chunk_shift)
    print("Hyperparameters:")
    print("-" * 40)
    print(f"  num_encoder_layers  {model.num_encoder_layers}")
    print(f"  d_model             {model.d_model}")
    print(f"  rnn_hidden_size     {model.rnn_hidden_size}")
    print(f"  T (chunk_size)      {model.chunk_size}")
    print(f"  decode_chunk_len    {model.chunk_shift}")
    print(f"  vocab_size          {model.vocab_size}")
    print(f"  context_size        {model.context_size}")
    print(f"  audio per step      {ms} ms ({samples} samples at {SAMPLE_RATE} Hz)")
    print("-" * 40)
    print(f"encoder: {model.encoder_input_names} -> {model.encoder_output_names}")
    print(f"decoder: {model.decoder_input_names} -> {model.decoder_output_names}")
    print(f"joiner:  {model.joiner_input_names} -> {model.joiner_output_names}")


def smoke_test(model: LstmTransducerModel, feature_dim: int) -> None:
    state = model.get_encoder_init_states()
    features = np.zeros((1, model.chunk_size, feature_dim), dtype=np.float32)
    encoder_out, state = model.run_encoder(features, state)

    # Blank-only context, as a decoding loop starts every stream
    decoder_input = model.build_decoder_input([0] * model.context_size)
    decoder_out = model.run_decoder(decoder_input)
    logits = model.run_joiner(encoder_out[:, 0], decoder_out)

    print(f"encoder_out: {encoder_out.shape}")
    print(f"next state:  h={state.h.shape} c={state.c.shape}")
    print(f"decoder_out: {decoder_out.shape}")
    print(f"logits:      {logits.shape}")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.debug else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    try:
        model = LstmTransducerModel(config_from_args(args))
    except ModelConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    report(model)

    if args.smoke:
        try:
            smoke_test(model, args.feature_dim)
        except EngineError as e:
            print(f"error: {e}", file=sys.stderr)
            return EXIT_ENGINE_ERROR

    return 0


def run():
    """CLI entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
