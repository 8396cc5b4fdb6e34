
import attr
from twisted.internet import defer


def _is_n_bytes(n):
    def validator(instance, attribute, value):
        if not isinstance(value, bytes) or len(value) != n:
            raise ValueError("{} must be {} bytes".format(attribute.name, n))
    return validator


is_65bytes = _is_n_bytes(65)
is_128bytes = _is_n_bytes(128)


def is_positive(instance, attribute, value):
    if value <= 0:
        raise ValueError("{} must be positive".format(attribute.name))


_NOT_FIRED = object()


@attr.s
class SingleObserver(object):
    """
    i hand out deferreds that all fire with the one result passed to
    fire(). deferreds requested after the fact fire immediately.
    """
    _observers = attr.ib(init=False, default=attr.Factory(list))
    _result = attr.ib(init=False, default=_NOT_FIRED)

    @property
    def fired(self):
        return self._result is not _NOT_FIRED

    def when_fired(self):
        d = defer.Deferred()
        if self.fired:
            d.callback(self._result)
        else:
            self._observers.append(d)
        return d

    def fire(self, result):
        """
        result may be a Failure, in which case every observer errbacks.
        """
        if self.fired:
            raise RuntimeError("SingleObserver fired twice")
        self._result = result
        observers, self._observers = self._observers, []
        for d in observers:
            d.callback(result)
