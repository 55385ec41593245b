"""Core constants for the LSTM transducer runner.

Exported icefall LSTM transducer models (lstm_transducer_stateless2) expect
80-dim log-mel fbank frames computed from 16kHz mono audio. Each of the three
ONNX files carries its shape hyperparameters as custom metadata.
"""

# Audio / feature geometry the exported models were trained with
SAMPLE_RATE: int = 16000  # Hz
FEATURE_DIM: int = 80  # fbank bins per frame
FRAME_SHIFT_MS: int = 10  # fbank hop between feature frames

# Encoder metadata keys
META_NUM_ENCODER_LAYERS: str = "num_encoder_layers"
META_T: str = "T"  # frames fed to the encoder per call (incl. right context)
META_DECODE_CHUNK_LEN: str = "decode_chunk_len"  # frames a stream advances per call
META_RNN_HIDDEN_SIZE: str = "rnn_hidden_size"
META_D_MODEL: str = "d_model"

ENCODER_META_KEYS: tuple[str, ...] = (
    META_NUM_ENCODER_LAYERS,
    META_T,
    META_DECODE_CHUNK_LEN,
    META_RNN_HIDDEN_SIZE,
    META_D_MODEL,
)

# Decoder metadata keys
META_VOCAB_SIZE: str = "vocab_size"
META_CONTEXT_SIZE: str = "context_size"

DECODER_META_KEYS: tuple[str, ...] = (META_VOCAB_SIZE, META_CONTEXT_SIZE)

# Session arity: (inputs, minimum outputs)
ENCODER_ARITY: tuple[int, int] = (3, 3)  # (x, h, c) -> (encoder_out, next_h, next_c)
DECODER_ARITY: tuple[int, int] = (1, 1)  # (y,) -> (decoder_out,)
JOINER_ARITY: tuple[int, int] = (2, 1)  # (encoder_out, decoder_out) -> (logit,)

# Recurrent state is always (hidden, cell)
NUM_STATE_TENSORS: int = 2

# Session defaults
DEFAULT_NUM_THREADS: int = 1
DEFAULT_PROVIDER: str = "cpu"
PROVIDERS: dict[str, list[str]] = {
    "cpu": ["CPUExecutionProvider"],
    "cuda": ["CUDAExecutionProvider", "CPUExecutionProvider"],
    "coreml": ["CoreMLExecutionProvider", "CPUExecutionProvider"],
}

# Environment-based configuration
ENV_PREFIX: str = "LSTM_STT_"
