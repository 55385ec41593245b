"""Integration tests against real onnxruntime sessions.

The graphs are tiny hand-built stand-ins for an exported LSTM transducer:
the encoder passes features through and adds one to both state tensors, the
decoder casts token ids to floats and the joiner adds its inputs.
"""

from pathlib import Path

import numpy as np
import pytest

onnx = pytest.importorskip("onnx")
from onnx import TensorProto, helper, numpy_helper  # noqa: E402

from lstm_stt.cli import main  # noqa: E402
from lstm_stt.config import ModelConfig  # noqa: E402
from lstm_stt.engine.onnx_runtime import load_onnx_session  # noqa: E402
from lstm_stt.errors import EngineError, MetadataError, ModelConfigError  # noqa: E402
from lstm_stt.model import LstmTransducerModel  # noqa: E402

pytestmark = pytest.mark.onnx

LAYERS = 2
D_MODEL = 2
HIDDEN = 3
CONTEXT = 2
T = 5
FEATURE_DIM = 2  # equal to CONTEXT so encoder frames can be joined with decoder output

ENCODER_META = {
    "num_encoder_layers": str(LAYERS),
    "T": str(T),
    "decode_chunk_len": "4",
    "rnn_hidden_size": str(HIDDEN),
    "d_model": str(D_MODEL),
}
DECODER_META = {"vocab_size": "500", "context_size": str(CONTEXT)}


def _save(graph, path: Path, metadata: dict[str, str]) -> Path:
    model = helper.make_model(graph, opset_imports=[helper.make_opsetid("", 13)])
    model.ir_version = 8
    helper.set_model_props(model, metadata)
    onnx.save(model, str(path))
    return path


def _encoder_graph():
    one = numpy_helper.from_array(np.array(1.0, dtype=np.float32), name="one")
    return helper.make_graph(
        [
            helper.make_node("Identity", ["x"], ["encoder_out"]),
            helper.make_node("Add", ["h", "one"], ["next_h"]),
            helper.make_node("Add", ["c", "one"], ["next_c"]),
        ],
        "encoder",
        [
            helper.make_tensor_value_info("x", TensorProto.FLOAT, ["N", "T", "F"]),
            helper.make_tensor_value_info("h", TensorProto.FLOAT, [LAYERS, "N", D_MODEL]),
            helper.make_tensor_value_info("c", TensorProto.FLOAT, [LAYERS, "N", HIDDEN]),
        ],
        [
            helper.make_tensor_value_info("encoder_out", TensorProto.FLOAT, ["N", "T", "F"]),
            helper.make_tensor_value_info("next_h", TensorProto.FLOAT, [LAYERS, "N", D_MODEL]),
            helper.make_tensor_value_info("next_c", TensorProto.FLOAT, [LAYERS, "N", HIDDEN]),
        ],
        initializer=[one],
    )


def _decoder_graph():
    return helper.make_graph(
        [helper.make_node("Cast", ["y"], ["decoder_out"], to=TensorProto.FLOAT)],
        "decoder",
        [helper.make_tensor_value_info("y", TensorProto.INT64, ["N", CONTEXT])],
        [helper.make_tensor_value_info("decoder_out", TensorProto.FLOAT, ["N", CONTEXT])],
    )


def _joiner_graph():
    return helper.make_graph(
        [helper.make_node("Add", ["encoder_out", "decoder_out"], ["logit"])],
        "joiner",
        [
            helper.make_tensor_value_info("encoder_out", TensorProto.FLOAT, ["N", "D"]),
            helper.make_tensor_value_info("decoder_out", TensorProto.FLOAT, ["N", "D"]),
        ],
        [helper.make_tensor_value_info("logit", TensorProto.FLOAT, ["N", "D"])],
    )


def _write_model_dir(directory: Path, decoder_meta: dict[str, str] = DECODER_META) -> Path:
    _save(_encoder_graph(), directory / "encoder-epoch-99-avg-1.onnx", ENCODER_META)
    _save(_decoder_graph(), directory / "decoder-epoch-99-avg-1.onnx", decoder_meta)
    _save(_joiner_graph(), directory / "joiner-epoch-99-avg-1.onnx", {})
    return directory


@pytest.fixture
def model_dir(tmp_path):
    return _write_model_dir(tmp_path)


@pytest.fixture
def model(model_dir):
    return LstmTransducerModel(ModelConfig.from_dir(model_dir, num_threads=2))


class TestOnnxSession:
    """Tests for the onnxruntime session wrapper."""

    def test_names_and_metadata(self, model_dir):
        """Names and custom metadata are read from the file."""
        session = load_onnx_session(model_dir / "encoder-epoch-99-avg-1.onnx", num_threads=1)
        assert session.input_names == ["x", "h", "c"]
        assert session.output_names == ["encoder_out", "next_h", "next_c"]
        assert session.metadata["rnn_hidden_size"] == str(HIDDEN)

    def test_selected_outputs(self, model_dir):
        """Outputs come back in the requested order."""
        session = load_onnx_session(model_dir / "decoder-epoch-99-avg-1.onnx")
        (out,) = session.run([np.array([[1, 2]], dtype=np.int64)], ["decoder_out"])
        np.testing.assert_array_equal(out, [[1.0, 2.0]])

    def test_missing_file(self, tmp_path):
        """Loading a missing file is a configuration error naming it."""
        with pytest.raises(ModelConfigError, match="encoder.onnx"):
            load_onnx_session(tmp_path / "encoder.onnx")

    def test_corrupt_file(self, tmp_path):
        """A file onnxruntime cannot parse is a configuration error."""
        path = tmp_path / "encoder.onnx"
        path.write_bytes(b"not a model")
        with pytest.raises(ModelConfigError, match="failed to load"):
            load_onnx_session(path)

    def test_engine_error(self, model_dir):
        """Runtime failures are wrapped as EngineError."""
        session = load_onnx_session(model_dir / "decoder-epoch-99-avg-1.onnx")
        with pytest.raises(EngineError) as exc_info:
            session.run([np.zeros((1, CONTEXT), dtype=np.float32)])
        assert exc_info.value.__cause__ is not None


class TestModelOnOnnxRuntime:
    """Tests for the adapter on real sessions."""

    def test_hyperparameters(self, model):
        """Metadata is read from the ONNX files."""
        assert model.num_encoder_layers == LAYERS
        assert model.d_model == D_MODEL
        assert model.rnn_hidden_size == HIDDEN
        assert model.context_size == CONTEXT
        assert model.chunk_size == T
        assert model.chunk_shift == 4

    def test_encoder_step(self, model):
        """Features pass through and the state advances."""
        features = np.arange(T * FEATURE_DIM, dtype=np.float32).reshape(1, T, FEATURE_DIM)
        state = model.get_encoder_init_states()

        encoder_out, state = model.run_encoder(features, state)
        encoder_out, state = model.run_encoder(features, state)

        np.testing.assert_array_equal(encoder_out, features)
        np.testing.assert_array_equal(state.h, np.full((LAYERS, 1, D_MODEL), 2.0))
        np.testing.assert_array_equal(state.c, np.full((LAYERS, 1, HIDDEN), 2.0))

    def test_batched_encoder_step(self, model):
        """Stacked states run as one batch and unstack per stream."""
        states = [model.get_encoder_init_states() for _ in range(3)]
        _, states[1] = model.run_encoder(np.zeros((1, T, FEATURE_DIM), np.float32), states[1])

        stacked = model.stack_states(states)
        _, next_state = model.run_encoder(np.zeros((3, T, FEATURE_DIM), np.float32), stacked)
        parts = model.unstack_states(next_state)

        np.testing.assert_array_equal(parts[0].h, np.ones((LAYERS, 1, D_MODEL)))
        np.testing.assert_array_equal(parts[1].h, np.full((LAYERS, 1, D_MODEL), 2.0))
        np.testing.assert_array_equal(parts[2].c, np.ones((LAYERS, 1, HIDDEN)))

    def test_decoder_and_joiner(self, model):
        """Decoder input, decoder and joiner chain together."""
        features = np.ones((1, T, FEATURE_DIM), dtype=np.float32)
        encoder_out, _ = model.run_encoder(features, model.get_encoder_init_states())

        decoder_out = model.run_decoder(model.build_decoder_input([9, 3, 7]))
        np.testing.assert_array_equal(decoder_out, [[3.0, 7.0]])

        logits = model.run_joiner(encoder_out[:, 0], decoder_out)
        np.testing.assert_array_equal(logits, [[4.0, 8.0]])

    def test_invalid_metadata(self, tmp_path):
        """A decoder exported with vocab_size=0 cannot be loaded."""
        _write_model_dir(tmp_path, {"vocab_size": "0", "context_size": str(CONTEXT)})
        with pytest.raises(MetadataError) as exc_info:
            LstmTransducerModel(ModelConfig.from_dir(tmp_path))
        assert exc_info.value.key == "vocab_size"


class TestInspectCli:
    """Tests for the inspect CLI on real files."""

    def test_report_and_smoke(self, model_dir, capsys):
        """The CLI prints hyperparameters and smoke-step shapes."""
        code = main(["--model-dir", str(model_dir), "--smoke", "--feature-dim", str(FEATURE_DIM)])
        out = capsys.readouterr().out

        assert code == 0
        assert "rnn_hidden_size     3" in out
        assert f"encoder_out: (1, {T}, {FEATURE_DIM})" in out
        assert "logits:      (1, 2)" in out

    def test_bad_metadata_exits(self, tmp_path, capsys):
        """Invalid metadata ends the CLI with a diagnostic naming the key."""
        _write_model_dir(tmp_path, {"context_size": str(CONTEXT)})
        assert main(["--model-dir", str(tmp_path)]) == 1
        assert "vocab_size" in capsys.readouterr().err
