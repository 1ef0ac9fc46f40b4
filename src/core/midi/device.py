from dataclasses import dataclass


@dataclass(frozen=True)
class MidiDeviceInfo:
    name: str

    def matches(self, keywords) -> bool:
        name_upper = self.name.upper()
        return any(k.upper() in name_upper for k in keywords)
