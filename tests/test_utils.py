"""Tests for errors, logging, validation and factories."""
import json
import logging

import pytest

from patterns.factory import Factory, register_selector
from utils import (
    ErrorContext,
    EnsembleError,
    InferenceFailureError,
    InvalidArgumentError,
    InvalidStateError,
    LogContext,
    LoggerFactory,
    StructuredFormatter,
    get_logger
)
from utils.exceptions import ConfigurationError, ValidationError
from validation import (
    ChoiceValidator,
    EnsembleConfigSchema,
    PredicateValidator,
    RangeValidator,
    TypeValidator,
    validate_retained_count
)


class TestExceptions:
    """Tests for the exception hierarchy."""

    def test_to_dict(self):
        """Test structured error payloads."""
        error = InvalidArgumentError("bad input", details={'field': 'x'})
        assert error.to_dict() == {
            'error_type': 'InvalidArgumentError',
            'error_code': 'InvalidArgumentError',
            'message': 'bad input',
            'details': {'field': 'x'},
        }

    def test_hierarchy(self):
        """Test builtin bases for callers that catch broadly."""
        assert issubclass(InvalidArgumentError, ValueError)
        assert issubclass(ConfigurationError, InvalidArgumentError)
        assert issubclass(ValidationError, InvalidArgumentError)
        assert issubclass(InvalidStateError, RuntimeError)
        assert issubclass(InferenceFailureError, EnsembleError)

    def test_inference_failure_index(self):
        """Test the failing model index is carried."""
        error = InferenceFailureError("failed", model_index=4)
        assert error.model_index == 4
        assert error.details == {'model_index': 4}


class TestErrorContext:
    """Tests for the operation logging context."""

    def test_reraises(self, caplog):
        """Test errors are logged and propagate."""
        with caplog.at_level(logging.INFO, logger='ensemble'):
            with pytest.raises(InvalidStateError):
                with ErrorContext("select models"):
                    raise InvalidStateError("cache not sealed")
        assert "Starting operation: select models" in caplog.text
        assert "cache not sealed" in caplog.text

    def test_success(self, caplog):
        """Test completion is logged."""
        with caplog.at_level(logging.INFO, logger='ensemble'):
            with ErrorContext("combine"):
                pass
        assert "Completed operation: combine" in caplog.text


class TestLogging:
    """Tests for logger naming and formatting."""

    def test_loggers_nest_under_root(self):
        """Test module loggers share the library root."""
        assert get_logger('selectors').name == 'ensemble.selectors'
        assert get_logger('ensemble.trainer').name == 'ensemble.trainer'
        assert LoggerFactory.get_logger('x') is get_logger('x')

    def test_structured_formatter(self):
        """Test JSON log records."""
        record = logging.LogRecord('ensemble.test', logging.INFO, __file__, 1, 'hello %s', ('world',), None)
        payload = json.loads(StructuredFormatter().format(record))
        assert payload['message'] == 'hello world'
        assert payload['level'] == 'INFO'

    def test_log_context_adds_fields(self):
        """Test extra fields reach structured records inside the context."""
        logger = get_logger('test.context')
        with LogContext(logger, model_index=3):
            record = logging.getLogRecordFactory()('ensemble.test', logging.INFO, __file__, 1, 'msg', (), None)
        payload = json.loads(StructuredFormatter().format(record))
        assert payload['model_index'] == 3
        after = logging.getLogRecordFactory()('ensemble.test', logging.INFO, __file__, 1, 'msg', (), None)
        assert not hasattr(after, 'extra_fields')

    def test_nested_contexts_merge(self):
        """Test inner contexts add to the outer fields."""
        logger = get_logger('test.nested')
        with LogContext(logger, model_index=1):
            with LogContext(logger, phase='select'):
                record = logging.getLogRecordFactory()('ensemble.test', logging.INFO, __file__, 1, 'msg', (), None)
        assert record.extra_fields == {'model_index': 1, 'phase': 'select'}

    def test_configure_file_handler(self, tmp_path):
        """Test configured logging writes structured records to the log directory."""
        try:
            LoggerFactory.configure(log_dir=str(tmp_path), structured=True, console=False)
            get_logger('test.file').info("cache sealed")
        finally:
            LoggerFactory.reset()
        lines = (tmp_path / 'ensemble.log').read_text().splitlines()
        assert json.loads(lines[-1])['message'] == 'cache sealed'
        assert logging.getLogger('ensemble').handlers == []

    def test_configure_replaces_handlers(self):
        """Test configuring twice does not duplicate handlers."""
        try:
            LoggerFactory.configure()
            LoggerFactory.configure()
            assert len(logging.getLogger('ensemble').handlers) == 1
        finally:
            LoggerFactory.reset()


class TestValidation:
    """Tests for validators and the config schema."""

    def test_type_validator_rejects_bool(self):
        """Test booleans are not accepted as integers."""
        with pytest.raises(ValidationError):
            TypeValidator(int).validate(True)
        assert TypeValidator(int).validate(3) == 3

    def test_choice_validator(self):
        """Test allowed choices."""
        validator = ChoiceValidator(['a', 'b'])
        assert validator('a') == 'a'
        with pytest.raises(ValidationError):
            validator('c')

    def test_exclusive_range(self):
        """Test exclusive bounds reject the endpoints."""
        validator = RangeValidator(min_value=0.0, max_value=1.0, inclusive=False, name='share')
        assert validator(0.5) == 0.5
        with pytest.raises(ValidationError, match='share must be > 0.0'):
            validator(0.0)
        with pytest.raises(ValidationError):
            validator(1.0)

    def test_predicate_validator(self):
        """Test predicate failures carry the offending value."""
        validator = PredicateValidator(lambda v: v % 2 == 0, "must be even", name='n')
        assert validator(4) == 4
        with pytest.raises(ValidationError) as info:
            validator(3)
        assert info.value.details == {'actual': 3}

    def test_retained_count(self):
        """Test retained count values."""
        assert validate_retained_count('auto') == 'auto'
        assert validate_retained_count(5) == 5
        with pytest.raises(ValidationError):
            validate_retained_count(0)
        with pytest.raises(ValidationError):
            validate_retained_count(2.5)

    def test_schema_defaults_and_strictness(self):
        """Test defaults are filled and extra keys rejected."""
        validated = EnsembleConfigSchema().validate({'selector_kind': 'best'})
        assert validated['combiner_kind'] == 'median'
        assert validated['quality_metric'] is None
        with pytest.raises(ValidationError):
            EnsembleConfigSchema().validate({'unknown': 1})


class TestFactory:
    """Tests for string-keyed registries."""

    def test_registries_are_separate(self):
        """Test each factory owns its registry."""
        class LocalFactory(Factory):
            _registry = {}

        LocalFactory.register('thing', dict)
        assert LocalFactory.create('thing', a=1) == {'a': 1}
        assert LocalFactory.list_available() == ['thing']
        with pytest.raises(ConfigurationError):
            LocalFactory.get('other')

    def test_conflicting_registration(self):
        """Test a name cannot be bound to two implementations."""
        with pytest.raises(ConfigurationError):
            @register_selector('all')
            class Shadow:
                pass
